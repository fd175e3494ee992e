"""Engagement engine: streaks, milestones, digests, stories and mail"""
