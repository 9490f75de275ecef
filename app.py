#!/usr/bin/env python3
from cellar.cli import main

if __name__ == "__main__":
    main()
