from glf.cli.app import main

main()
