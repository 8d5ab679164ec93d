"""
Application services: domain logic, events, clock and concurrency control.
"""
