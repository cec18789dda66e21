from playlist_sync.cli import main

main()
