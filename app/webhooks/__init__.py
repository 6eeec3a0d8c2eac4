"""Inbound webhooks from Stripe and Vapi"""
