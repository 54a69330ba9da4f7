from homestock.cli import main

main()
