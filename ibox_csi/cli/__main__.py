#!/usr/bin/env python3
"""
Entry point for ibox-csi CLI tool.
"""

import sys

from ibox_csi.cli.cli import main

if __name__ == "__main__":
    sys.exit(main())
