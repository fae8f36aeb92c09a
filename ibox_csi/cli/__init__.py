"""Command line tools for the Ibox CSI controller."""
