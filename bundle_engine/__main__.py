"""Run the bundle-engine command line tool."""

from bundle_engine.tool.bundle_engine import main

main()
