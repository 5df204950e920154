import sys

from llm_sessions.cli import main

sys.exit(main())
