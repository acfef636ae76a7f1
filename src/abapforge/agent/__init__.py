"""Agent roles, the tool-use loop and the workflow orchestrator."""
