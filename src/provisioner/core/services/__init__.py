"""Provisioning services: directory client, record store, gate, filters."""
