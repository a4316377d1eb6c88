"""
Content Guard - fail-closed NSFW moderation for marketplace uploads.
"""
