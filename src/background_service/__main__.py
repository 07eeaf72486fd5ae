from background_service.launchers.launcher import main

if __name__ == "__main__":
    main()
