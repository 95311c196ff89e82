# Routes package init
"""
StackIt Backend — API Routes Package
======================================

Route Inventory:
    - auth.py:           /api/auth/*           accounts, tokens, profile
    - questions.py:      /api/questions/*      questions and question-side acceptance
    - answers.py:        /api/answers/*        answers and acceptance
    - votes.py:          /api/votes/*          voting
    - tags.py:           /api/tags/*           tag catalogue
    - notifications.py:  /api/notifications/*  the caller's inbox
    - health.py:         /health
    - realtime.py:       /ws                   WebSocket channel

Routes stay thin: parse input, call one service method, wrap the result in
ApiResponse, emit real-time events after the service has committed.
"""
