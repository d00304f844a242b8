"""Acado session and credential-recovery service."""
