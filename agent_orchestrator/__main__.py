"""Allow running as: python -m agent_orchestrator"""

import sys

from agent_orchestrator.main import main

if __name__ == "__main__":
    sys.exit(main())
