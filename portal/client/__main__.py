from portal.client.runner import main

main()
