from stackwatch.main import main

main()
