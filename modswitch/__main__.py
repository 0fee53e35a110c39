# modswitch/__main__.py
from modswitch.cli import main

main()
