"""Scheduling domain: weekly working hours, slot generation and availability"""
