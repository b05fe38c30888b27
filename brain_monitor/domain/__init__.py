"""Pure domain logic for brain-monitor: planning, parsing, policies and reports."""
