from popnode.cli import main

main()
