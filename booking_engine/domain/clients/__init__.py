"""Client records kept per practitioner, upserted by the booking write path"""
