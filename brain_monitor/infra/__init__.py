"""Infrastructure: subprocesses, filesystem, console and git side effects."""
