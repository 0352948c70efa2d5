from biaswatch.main import main


main()
