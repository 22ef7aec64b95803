"""Bookings domain: conflict detection and the booking transaction manager"""
