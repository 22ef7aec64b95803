"""Catalog domain: practitioners and the services they offer"""
