"""Core treasury accounting: pools, rewards, bonus, burn and the facade"""
