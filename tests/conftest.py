import cv2
import numpy as np
import pytest


@pytest.fixture
def sample_image_path(tmp_path):
    path = tmp_path / "still.png"
    img = np.zeros((120, 160, 3), dtype=np.uint8)
    cv2.rectangle(img, (40, 30), (100, 90), (255, 255, 255), -1)
    assert cv2.imwrite(str(path), img)
    return path


@pytest.fixture
def sample_video_path(tmp_path):
    # Build a tiny test video (12 frames @ 30fps, 64x48)
    h, w = 48, 64
    path = tmp_path / "tiny.avi"
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), 30, (w, h))
    assert writer.isOpened(), "OpenCV VideoWriter failed to open"
    for i in range(12):
        frame = np.full((h, w, 3), i * 10, dtype=np.uint8)
        writer.write(frame)
    writer.release()
    return path
