"""Onboarding services"""
