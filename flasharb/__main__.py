"""Allow running as: python -m flasharb"""
from flasharb.orchestrator import run

if __name__ == "__main__":
    run()
