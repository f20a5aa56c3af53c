from protosite.cli import main

main()
