"""Subscription billing: Stripe event handling and amount formatting"""
