"""Transcoding module for the video processing pipeline.

Implements FFmpeg-based media operations (duration probe, trim, 720p
transcode) and the per-job pipeline executor that orchestrates them.
"""
