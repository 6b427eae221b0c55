"""
The reduction pipeline: pixel arithmetic, combination of calibration frames, resampling and registration of
frames, and the orchestration of all stages for a camera's directory tree.
"""
