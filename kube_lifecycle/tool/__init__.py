"""Command line tool for kube-lifecycle."""
