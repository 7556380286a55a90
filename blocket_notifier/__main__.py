from blocket_notifier.main import main

main()
