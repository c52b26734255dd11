from gazecursor.eye_metrics import LEFT_EYE, RIGHT_EYE


EYE_WIDTH = 0.04
EYE_HEIGHT = 0.016


class MockLandmark:
    def __init__(self, x, y):
        self.x = x
        self.y = y


class RecordingSink:
    def __init__(self):
        self.messages = []

    def broadcast(self, message):
        self.messages.append(message)

    def intents(self, intent):
        return [m for m in self.messages if m["intent"] == intent]


def _place_eye(landmarks, anchors, center, width, height, iris_offset):
    cx, cy = center
    landmarks[anchors.outer] = MockLandmark(cx - width / 2.0, cy)
    landmarks[anchors.inner] = MockLandmark(cx + width / 2.0, cy)
    landmarks[anchors.upper] = MockLandmark(cx, cy - height / 2.0)
    landmarks[anchors.lower] = MockLandmark(cx, cy + height / 2.0)
    landmarks[anchors.iris] = MockLandmark(
        cx + iris_offset[0] * width / 2.0,
        cy + iris_offset[1] * height / 2.0,
    )


def make_face(
    left_offset=(0.0, 0.0),
    right_offset=None,
    left_width=EYE_WIDTH,
    right_width=EYE_WIDTH,
    height=EYE_HEIGHT,
    shift=(0.0, 0.0),
):
    """Landmarks dict keyed by mediapipe index; iris offsets are in socket half-sizes."""
    if right_offset is None:
        right_offset = left_offset
    landmarks = {}
    _place_eye(landmarks, LEFT_EYE, (0.4 + shift[0], 0.45 + shift[1]), left_width, height, left_offset)
    _place_eye(landmarks, RIGHT_EYE, (0.6 + shift[0], 0.45 + shift[1]), right_width, height, right_offset)
    return landmarks
