"""Wavespeed provider adapters.

Each adapter builds one endpoint family's request body and flattens its
response envelope:
  text → chat-completions, image/video/voice → task creation, poll → task result
"""
