from giteahook.main import main

main()
