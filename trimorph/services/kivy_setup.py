# Author: RD7
# Purpose: Small patch to setup required Kivy environment variables
# Created: 2026-10-10

import os

# Better practice is to put these in the command line
# They are put here for convenience of testing in IDEs
# e.g. $env:KIVY_NO_ARGS='1'; trimorph <args>
os.environ.setdefault("KIVY_NO_ARGS", "1")

# route Kivy's messages through the standard logging handlers
os.environ.setdefault("KIVY_LOG_MODE", "PYTHON")
