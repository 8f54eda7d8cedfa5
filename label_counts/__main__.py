from label_counts.main import main

main()
