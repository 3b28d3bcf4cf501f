# Copyright (c) Syntropy Systems
"""ftctl command line interface."""
