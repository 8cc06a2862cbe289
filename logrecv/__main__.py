""" python -m logrecv """
from .cli import main

main()
