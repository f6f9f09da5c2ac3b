"""Tests for the kube-lifecycle command line tool."""
