from jail_exporter.cli import main

main()
