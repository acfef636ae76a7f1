"""abapforge: multi-agent ABAP development workflow."""
