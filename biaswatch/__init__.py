"""biaswatch: fundamental change detection, update scheduling and bias scoring."""

__version__ = "1.0.0"
