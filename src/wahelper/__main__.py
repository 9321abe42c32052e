from wahelper.cli import main

main()
