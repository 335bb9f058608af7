"""Subscriber notifications"""
