"""Project version constants.

These constants are used in logs and in the CLI ``--version`` output.
"""

AGENT_NAME: str = "srd"
AGENT_VERSION: str = "0.1.0"
