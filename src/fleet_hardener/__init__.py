"""Converge host security posture (firewall, users, sshd) across a fleet."""

__version__ = "0.1.0"
