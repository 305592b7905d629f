"""
Site Snapshot - turn a live, dynamically rendered website into a static copy.

This package crawls a site, captures desktop and mobile renderings of every
page with a headless browser, localizes the assets they load, and rewrites
the pages into documents any plain file host can serve.
"""

__version__ = "1.0.0"
__author__ = "Site Snapshot Team"
