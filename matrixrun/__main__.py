from matrixrun.cli import main

main()
