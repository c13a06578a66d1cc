IMAGE_PRESETS = {
    # quality_start is (generic source, already heavily compressed source such as HEIC)
    "same": {
        "max_dimension": None,
        "target_ratio": 0.80,
        "quality_start": (0.85, 0.70),
        "quality_min": 0.60,
    },
    "small": {
        "max_dimension": 1280,
        "target_ratio": 0.55,
        "quality_start": (0.78, 0.60),
        "quality_min": 0.50,
    },
    "smallest": {
        "max_dimension": 720,
        "target_ratio": 0.30,
        "quality_start": (0.66, 0.50),
        "quality_min": 0.40,
    },
}

VIDEO_PRESETS = {
    "same": {"crf": 23, "max_width": None},
    "small": {"crf": 28, "max_width": 1080},
    "smallest": {"crf": 30, "max_width": 720},
}

# Fixed for every preset
VIDEO_ENCODING_SETTINGS = {
    "video_codec": "libx264",
    "encoder_preset": "veryfast",
    "pix_fmt": "yuv420p",
    "movflags": "+faststart",
    "audio_codec": "aac",
    "audio_bitrate": "128k",
}

ESTIMATE_RATIOS = {"same": 0.75, "small": 0.55, "smallest": 0.25}

DEFAULT_PRESET = "small"
