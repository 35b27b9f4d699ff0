from secretsync.cli.main import main

main()
