"""Buuk - booking availability and payment reconciliation backend"""
