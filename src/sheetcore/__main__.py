from sheetcore.cli import main

main()
