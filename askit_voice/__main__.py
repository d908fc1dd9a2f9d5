from askit_voice.cli import main

main()
