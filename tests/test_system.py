"""
System tests for the stroke digit recogniser
Covers gesture tracking, the model readiness gate, box classification,
the drawing session and the command-line replay path
"""

import json
import os
import shutil
import sys
import tempfile
import threading
import unittest
from unittest import mock

import numpy as np
import pandas as pd

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from stroke_ocr.classifier import (
    BoxClassifier,
    ClassificationResult,
    NotReadyError,
    classify_and_report,
    format_result,
)
from stroke_ocr.constants import RecognizerConfig
from stroke_ocr.data_loader import MNISTDataLoader
from stroke_ocr.display import BufferDisplay
from stroke_ocr.main import main as cli_main, replay_file, resolve_replay_config
from stroke_ocr.models import CNNModel, DigitClassifier, ModelState, tensorflow_available
from stroke_ocr.preprocessing import prepare_box_input
from stroke_ocr.session import RecognitionSession, load_gestures
from stroke_ocr.tracking import BoundingBox, BoxList, StrokeTracker


class IntensityModel:
    """Keras-like stand-in: the label depends on how much ink a patch holds"""

    def __init__(self):
        self.batches = []

    def predict(self, batch):
        batch = np.asarray(batch, dtype=np.float32)
        self.batches.append(batch.copy())
        probs = np.full((len(batch), 10), 0.01, dtype=np.float32)
        for i, patch in enumerate(batch):
            label = int(patch.sum() * 10) % 10
            probs[i, label] = 0.91
        return probs


class WideModel(IntensityModel):
    """Returns one probability more than there are labels"""

    def predict(self, batch):
        probs = super().predict(batch)
        return np.hstack([probs, np.full((len(probs), 1), 0.01, dtype=np.float32)])


class RecordingDisplay(BufferDisplay):
    """BufferDisplay that also remembers every status it was given"""

    def __init__(self):
        super().__init__()
        self.statuses = []

    def set_status(self, text):
        self.statuses.append(text)
        super().set_status(text)


def broken_loader():
    raise FileNotFoundError("no weights")


def ready_classifier(model=None):
    model = model or IntensityModel()
    return DigitClassifier(loader=lambda: model).initialize(), model


class TestStrokeTracker(unittest.TestCase):
    """Gesture bounds and padded boxes"""

    def setUp(self):
        self.tracker = StrokeTracker(width=280, height=280, pad=40)

    def _gesture(self, points):
        self.tracker.on_stroke_start()
        for x, y in points:
            self.tracker.on_stroke_point(x, y)
        return self.tracker.on_stroke_end()

    def test_three_point_gesture(self):
        box = self._gesture([(10, 10), (20, 10), (20, 20)])
        self.assertEqual(box.as_tuple(), (-10, -10, 40, 40))

    def test_box_matches_padded_extremes(self):
        points = [(100, 40), (130, 90), (115, 70), (90, 60)]
        box = self._gesture(points)
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        self.assertEqual(box, BoundingBox(min(ys) - 20, min(xs) - 20, max(ys) + 20, max(xs) + 20))
        self.assertFalse(box.is_degenerate)

    def test_repeated_point_is_idempotent(self):
        once = self._gesture([(50, 60)])
        many = self._gesture([(50, 60)] * 5)
        self.assertEqual(once, many)
        self.assertEqual(once.as_tuple(), (40, 30, 80, 70))

    def test_every_gesture_end_appends_one_box(self):
        self._gesture([(10, 10), (20, 20)])
        self._gesture([(100, 100)])
        self.tracker.on_stroke_start()
        self.tracker.on_stroke_end()
        self.assertEqual(len(self.tracker.boxes), 3)

    def test_gesture_without_points_is_degenerate(self):
        self.tracker.on_stroke_start()
        box = self.tracker.on_stroke_end()
        self.assertEqual(box.as_tuple(), (260, 260, 20, 20))
        self.assertTrue(box.is_degenerate)

    def test_accumulator_resets_between_gestures(self):
        self._gesture([(200, 200), (250, 250)])
        second = self._gesture([(10, 10)])
        self.assertEqual(second.as_tuple(), (-10, -10, 30, 30))

    def test_boxes_keep_drawing_order(self):
        first = self._gesture([(10, 10)])
        second = self._gesture([(150, 150)])
        self.assertEqual(self.tracker.boxes.snapshot(), (first, second))
        self.assertEqual(self.tracker.boxes[1], second)

    def test_normalized_divides_by_width(self):
        box = BoundingBox(top=20, left=40, bottom=100, right=120)
        self.assertEqual(box.normalized(200), (0.1, 0.2, 0.5, 0.6))
        self.assertEqual(box.normalized(200, 100), (0.2, 0.2, 1.0, 0.6))


class TestBoxList(unittest.TestCase):

    def test_iteration_uses_snapshot(self):
        boxes = BoxList()
        boxes.append(BoundingBox(0, 0, 1, 1))
        seen = []
        for box in boxes:
            seen.append(box)
            boxes.append(BoundingBox(2, 2, 3, 3))
        self.assertEqual(len(seen), 1)
        self.assertEqual(len(boxes), 2)


class TestDigitClassifier(unittest.TestCase):
    """Readiness state machine"""

    def test_initial_state(self):
        classifier = DigitClassifier(loader=IntensityModel)
        self.assertIs(classifier.state, ModelState.UNINITIALIZED)
        self.assertFalse(classifier.is_ready)

    def test_initialize_warms_up_and_becomes_ready(self):
        classifier, model = ready_classifier()
        self.assertIs(classifier.state, ModelState.READY)
        self.assertEqual(len(model.batches), 1)
        self.assertEqual(model.batches[0].shape, (1, 28, 28, 1))
        self.assertEqual(float(model.batches[0].sum()), 0.0)

    def test_initialize_only_once(self):
        classifier, _ = ready_classifier()
        with self.assertRaises(RuntimeError):
            classifier.initialize()

    def test_failed_load(self):
        def broken_loader():
            raise FileNotFoundError("no weights")

        classifier = DigitClassifier(loader=broken_loader)
        with self.assertRaises(FileNotFoundError):
            classifier.initialize()
        self.assertIs(classifier.state, ModelState.FAILED)
        self.assertIsInstance(classifier.error, FileNotFoundError)
        with self.assertRaises(RuntimeError):
            classifier.initialize()

    def test_predict_before_ready(self):
        classifier = DigitClassifier(loader=IntensityModel)
        with self.assertRaises(RuntimeError):
            classifier.predict(np.zeros((1, 28, 28, 1), dtype=np.float32))

    def test_missing_model_file(self):
        if not tensorflow_available():
            self.skipTest("TensorFlow not available")
        classifier = DigitClassifier(model_path=os.path.join(tempfile.gettempdir(), "missing.keras"))
        with self.assertRaises(FileNotFoundError):
            classifier.initialize()
        self.assertIs(classifier.state, ModelState.FAILED)


class TestBoxClassifier(unittest.TestCase):
    """Per-box crop, normalise and classify"""

    def setUp(self):
        self.image = np.zeros((280, 280, 3), dtype=np.uint8)
        self.image[30:60, 30:60, 1] = 128
        self.image[150:220, 150:170, 1] = 128
        self.boxes = [BoundingBox(10, 10, 80, 80), BoundingBox(130, 130, 240, 190)]

    def test_not_ready_fails_before_iteration(self):
        box_classifier = BoxClassifier(DigitClassifier(loader=IntensityModel))
        with self.assertRaises(NotReadyError):
            box_classifier.classify(self.boxes, self.image)

    def test_not_ready_while_model_loads(self):
        started = threading.Event()
        release = threading.Event()
        model = IntensityModel()

        def slow_loader():
            started.set()
            release.wait(10)
            return model

        classifier = DigitClassifier(loader=slow_loader)
        box_classifier = BoxClassifier(classifier)
        loading = threading.Thread(target=classifier.initialize)
        loading.start()
        try:
            self.assertTrue(started.wait(10))
            self.assertIs(classifier.state, ModelState.INITIALIZING)
            with self.assertRaises(NotReadyError):
                box_classifier.classify(self.boxes, self.image)
            display = BufferDisplay()
            self.assertIsNone(classify_and_report(box_classifier, self.boxes, self.image, display))
            self.assertEqual(display.lines, ["Model still loading..."])
            self.assertEqual(model.batches, [])
        finally:
            release.set()
            loading.join(10)

        self.assertIs(classifier.state, ModelState.READY)
        self.assertEqual(len(list(box_classifier.classify(self.boxes, self.image))), 2)

    def test_not_ready_after_failed_load(self):
        classifier = DigitClassifier(loader=broken_loader)
        with self.assertRaises(FileNotFoundError):
            classifier.initialize()
        box_classifier = BoxClassifier(classifier)
        with self.assertRaises(NotReadyError):
            box_classifier.classify(self.boxes, self.image)
        display = BufferDisplay()
        self.assertIsNone(classify_and_report(box_classifier, self.boxes, self.image, display))
        self.assertEqual(display.lines, ["Model still loading..."])

    def test_label_count_mismatch(self):
        classifier, _ = ready_classifier(WideModel())
        with self.assertRaises(ValueError):
            list(BoxClassifier(classifier).classify(self.boxes, self.image))

    def test_empty_box_list(self):
        classifier, _ = ready_classifier()
        self.assertEqual(list(BoxClassifier(classifier).classify([], self.image)), [])

    def test_one_result_per_box_in_order(self):
        classifier, model = ready_classifier()
        results = list(BoxClassifier(classifier).classify(self.boxes, self.image))
        self.assertEqual(len(results), len(self.boxes))
        for result in results:
            self.assertIsInstance(result, ClassificationResult)
            self.assertIn(result.label, [str(i) for i in range(10)])
            self.assertAlmostEqual(result.confidence, 0.91, places=5)
        # batches[0] is the warm-up input
        for batch, box in zip(model.batches[1:], self.boxes):
            np.testing.assert_allclose(batch, prepare_box_input(self.image, box, 280))

    def test_results_are_lazy(self):
        classifier, model = ready_classifier()
        results = BoxClassifier(classifier).classify(self.boxes, self.image)
        self.assertEqual(len(model.batches), 1)
        next(results)
        self.assertEqual(len(model.batches), 2)

    def test_box_list_copied_at_call_time(self):
        classifier, _ = ready_classifier()
        boxes = BoxList()
        for box in self.boxes:
            boxes.append(box)
        results = BoxClassifier(classifier).classify(boxes, self.image)
        boxes.append(BoundingBox(0, 0, 10, 10))
        self.assertEqual(len(list(results)), 2)

    def test_repeat_classification_is_stable(self):
        classifier, _ = ready_classifier()
        box_classifier = BoxClassifier(classifier)
        first = [r.label for r in box_classifier.classify(self.boxes, self.image)]
        second = [r.label for r in box_classifier.classify(self.boxes, self.image)]
        self.assertEqual(first, second)

    def test_degenerate_boxes_are_classified_by_default(self):
        classifier, _ = ready_classifier()
        boxes = self.boxes + [BoundingBox(260, 260, 20, 20)]
        results = list(BoxClassifier(classifier).classify(boxes, self.image))
        self.assertEqual(len(results), 3)

    def test_skip_degenerate(self):
        classifier, _ = ready_classifier()
        boxes = self.boxes + [BoundingBox(260, 260, 20, 20)]
        results = list(BoxClassifier(classifier, skip_degenerate=True).classify(boxes, self.image))
        self.assertEqual(len(results), 2)

    def test_per_axis_normalisation(self):
        image = np.zeros((140, 280, 3), dtype=np.uint8)
        image[30:60, 30:60, 1] = 128
        classifier, model = ready_classifier()
        list(BoxClassifier(classifier, per_axis_normalization=True).classify(self.boxes[:1], image))
        np.testing.assert_allclose(model.batches[1], prepare_box_input(image, self.boxes[0], 280, 140))

    def test_format_result(self):
        self.assertEqual(format_result(ClassificationResult("7", 0.98765)),
                         "Detected: 7 (confidence=0.988)")

    def test_report_not_ready(self):
        display = BufferDisplay()
        box_classifier = BoxClassifier(DigitClassifier(loader=IntensityModel))
        self.assertIsNone(classify_and_report(box_classifier, self.boxes, self.image, display))
        self.assertEqual(display.lines, ["Model still loading..."])

    def test_report_lines(self):
        display = BufferDisplay()
        classifier, _ = ready_classifier()
        results = classify_and_report(BoxClassifier(classifier), self.boxes, self.image, display)
        self.assertEqual(display.lines[0], "Classifying...")
        self.assertEqual(display.lines[1:3], [format_result(r) for r in results])
        self.assertEqual(display.lines[-1], "Final Output: " + "".join(r.label for r in results))

    def test_report_empty(self):
        display = BufferDisplay()
        classifier, _ = ready_classifier()
        self.assertEqual(classify_and_report(BoxClassifier(classifier), [], self.image, display), [])
        self.assertEqual(display.lines, ["Classifying...", "", "Final Output: "])


class TestRecognitionSession(unittest.TestCase):
    """Pointer events through to displayed results"""

    def setUp(self):
        self.display = BufferDisplay()
        self.model = IntensityModel()
        self.session = RecognitionSession(
            RecognizerConfig(width=280, height=280),
            model=DigitClassifier(loader=lambda: self.model),
            display=self.display,
        )

    def test_gesture_draws_ink_and_records_box(self):
        box = self.session.draw_gesture([(50, 50), (65, 65), (80, 80)])
        self.assertEqual(box.as_tuple(), (30, 30, 100, 100))
        snapshot = self.session.surface.snapshot()
        self.assertEqual(snapshot.shape, (280, 280, 3))
        self.assertEqual(tuple(snapshot[65, 65]), (0, 128, 0))
        self.assertEqual(int(snapshot[200, 200].max()), 0)

    def test_outlines_stay_out_of_snapshot(self):
        self.session.draw_gesture([(50, 50), (80, 80)])
        self.assertEqual(int(self.session.surface.snapshot()[:, :, 0].max()), 0)
        rendered = self.session.surface.render()
        self.assertEqual(tuple(rendered[30, 60]), (255, 0, 0))

    def test_click_without_drag(self):
        self.session.pointer_down(100, 120)
        box = self.session.pointer_up()
        self.assertEqual(box.as_tuple(), (100, 80, 140, 120))
        self.assertEqual(int(self.session.surface.snapshot().max()), 0)

    def test_move_and_up_without_down_are_ignored(self):
        self.session.pointer_move(10, 10)
        self.assertIsNone(self.session.pointer_up())
        self.assertEqual(self.session.boxes, ())

    def test_two_gestures_classified_in_drawing_order(self):
        first = self.session.draw_gesture([(40, 40), (60, 80)])
        second = self.session.draw_gesture([(150, 40), (170, 90), (190, 60)])
        self.assertEqual(self.session.boxes, (first, second))

        self.session.initialize_model()
        self.assertEqual(self.display.lines, ["Ready to classify!"])
        results = self.session.classify()
        self.assertEqual(len(results), 2)
        snapshot = self.session.surface.snapshot()
        np.testing.assert_allclose(self.model.batches[1], prepare_box_input(snapshot, first, 280))
        np.testing.assert_allclose(self.model.batches[2], prepare_box_input(snapshot, second, 280))

    def test_classify_before_initialization(self):
        self.session.draw_gesture([(40, 40), (60, 80)])
        self.assertIsNone(self.session.classify())
        self.assertEqual(self.display.lines, ["Model still loading..."])

    def test_initialization_statuses(self):
        display = RecordingDisplay()
        session = RecognitionSession(model=DigitClassifier(loader=IntensityModel), display=display)
        session.initialize_model()
        self.assertEqual(display.statuses, ["Loading model...", "Ready to classify!"])

    def test_failed_initialization_reported(self):
        display = RecordingDisplay()
        session = RecognitionSession(model=DigitClassifier(loader=broken_loader), display=display)
        with self.assertRaises(FileNotFoundError):
            session.initialize_model()
        self.assertEqual(display.statuses, ["Loading model...", "Model failed to load."])
        self.assertEqual(display.lines, ["Model failed to load."])


class FakeRoot:
    """Records callbacks scheduled with after() instead of running a Tk loop"""

    def __init__(self):
        self.scheduled = []

    def after(self, ms, callback):
        self.scheduled.append(callback)


class FakeText:
    def __init__(self):
        self.content = ""

    def delete(self, start, end):
        self.content = ""

    def insert(self, index, text):
        self.content += text

    def see(self, index):
        pass


class TestTkDisplay(unittest.TestCase):
    """Queued display writes are applied from the Tk thread"""

    def setUp(self):
        try:
            from stroke_ocr import gui
        except ImportError:
            self.skipTest("tkinter not available")
        self.gui = gui
        self.root = FakeRoot()
        self.text = FakeText()
        self.display = gui.TkDisplay(self.root, self.text)

    def test_status_and_lines(self):
        self.display.set_status("Loading model...")
        self.display.append("Detected: 3 (confidence=0.910)")
        self.assertEqual(self.text.content, "")
        self.display._drain()
        self.assertEqual(self.text.content, "Loading model...\nDetected: 3 (confidence=0.910)\n")
        self.display.set_status("Ready to classify!")
        self.display._drain()
        self.assertEqual(self.text.content, "Ready to classify!\n")

    def test_error_from_another_thread_is_shown_on_drain(self):
        worker = threading.Thread(target=self.display.report_error,
                                  args=("Model Loading Error", "no weights"))
        worker.start()
        worker.join()
        self.assertEqual(len(self.root.scheduled), 1)

        with mock.patch.object(self.gui.messagebox, "showerror") as showerror:
            self.display._drain()
        showerror.assert_called_once_with("Model Loading Error", "no weights")
        self.assertEqual(len(self.root.scheduled), 2)

    def test_model_load_failure_goes_through_queue(self):
        app = self.gui.StrokeOCRApplication.__new__(self.gui.StrokeOCRApplication)
        app.root = self.root
        app.display = self.display
        app.session = RecognitionSession(model=DigitClassifier(loader=broken_loader),
                                         display=self.display)
        with mock.patch.object(self.gui.threading, "Thread") as thread_cls:
            app.start_model_loading()
        worker = threading.Thread(target=thread_cls.call_args.kwargs["target"])
        worker.start()
        worker.join()
        # Only the drain loop scheduled by the display itself
        self.assertEqual(len(self.root.scheduled), 1)

        with mock.patch.object(self.gui.messagebox, "showerror") as showerror:
            self.display._drain()
        showerror.assert_called_once_with("Model Loading Error", "Error loading model: no weights")
        self.assertEqual(self.text.content, "Model failed to load.\n")


class TestReplayFiles(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def _write(self, name, data):
        path = os.path.join(self.tmpdir, name)
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(data, handle)
        return path

    def test_list_form(self):
        path = self._write("list.json", [[[1, 2], [3, 4]], [[5, 6]]])
        size, gestures = load_gestures(path)
        self.assertIsNone(size)
        self.assertEqual(gestures, [[(1.0, 2.0), (3.0, 4.0)], [(5.0, 6.0)]])

    def test_object_form(self):
        path = self._write("obj.json", {"width": 400, "height": 200, "gestures": [[[1, 2]]]})
        size, gestures = load_gestures(path)
        self.assertEqual(size, (400, 200))
        self.assertEqual(len(gestures), 1)

    def test_malformed(self):
        for index, data in enumerate([
            {"width": 10},
            {"width": 10, "gestures": []},
            [[[1, 2, 3]]],
            [[["a", 2]]],
            [{"x": 1}],
            {"gestures": "nope"},
        ]):
            path = self._write(f"bad{index}.json", data)
            with self.assertRaises(ValueError):
                load_gestures(path)

    def test_bundled_sample(self):
        path = os.path.join(os.path.dirname(__file__), '..', 'samples', 'two_digits.json')
        size, gestures = load_gestures(path)
        self.assertEqual(size, (280, 280))
        session = RecognitionSession(RecognizerConfig(*size), display=BufferDisplay(),
                                     model=DigitClassifier(loader=IntensityModel))
        boxes = session.replay(gestures)
        self.assertEqual(len(boxes), 2)
        self.assertLess(boxes[0].right, boxes[1].left)

    def test_command_line_size_wins_over_file(self):
        config = RecognizerConfig(width=140, height=140)
        resolved = resolve_replay_config(config, (280, 300), pinned=["width"])
        self.assertEqual((resolved.width, resolved.height), (140, 300))
        resolved = resolve_replay_config(config, (280, 300), pinned=["width", "height"])
        self.assertEqual((resolved.width, resolved.height), (140, 140))

    def test_file_size_used_when_not_given(self):
        config = RecognizerConfig()
        resolved = resolve_replay_config(config, (400, 200))
        self.assertEqual((resolved.width, resolved.height), (400, 200))
        self.assertIs(resolve_replay_config(config, None, ["width"]), config)

    def test_replay_file_keeps_pinned_width(self):
        path = os.path.join(os.path.dirname(__file__), '..', 'samples', 'two_digits.json')
        save_path = os.path.join(self.tmpdir, "surface.png")
        results = replay_file(path, RecognizerConfig(width=300, height=100), save_path,
                              pinned=["width"], model=DigitClassifier(loader=IntensityModel))
        self.assertEqual(len(results), 2)
        self.assertTrue(os.path.exists(save_path))

    def test_cli_missing_replay_file(self):
        self.assertEqual(cli_main(["--replay", os.path.join(self.tmpdir, "missing.json")]), 1)

    def test_cli_replay_without_model(self):
        path = self._write("digits.json", [[[40, 40], [60, 80]]])
        model_path = os.path.join(self.tmpdir, "missing.keras")
        self.assertEqual(cli_main(["--replay", path, "--model", model_path]), 1)


class TestDataLoader(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        rng = np.random.default_rng(0)
        for name, rows in (("mnist_train.csv", 20), ("mnist_test.csv", 10)):
            labels = np.arange(rows) % 10
            pixels = rng.integers(0, 256, size=(rows, 784))
            frame = pd.DataFrame(np.column_stack([labels, pixels]),
                                 columns=["label"] + [f"px{i}" for i in range(784)])
            frame.to_csv(os.path.join(self.tmpdir, name), index=False)

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def test_csv_loading(self):
        loader = MNISTDataLoader(source="mnist_csv", data_dir=self.tmpdir)
        X_train, y_train, X_test, y_test = loader.load_data()
        self.assertEqual(X_train.shape, (20, 784))
        self.assertEqual(len(y_test), 10)

        X_train, y_train, X_test, y_test = loader.preprocess_data()
        self.assertEqual(X_train.shape, (20, 28, 28, 1))
        self.assertTrue(X_train.min() >= 0 and X_train.max() <= 1)
        self.assertEqual(loader.get_class_distribution()['train'][0], 2)

    def test_missing_csv(self):
        loader = MNISTDataLoader(source="mnist_csv", data_dir=os.path.join(self.tmpdir, "nope"))
        with self.assertRaises(FileNotFoundError):
            loader.load_data()

    def test_unknown_source(self):
        with self.assertRaises(ValueError):
            MNISTDataLoader(source="svhn")

    def test_preprocess_before_load(self):
        with self.assertRaises(ValueError):
            MNISTDataLoader(source="mnist_csv").preprocess_data()


class TestCNNModel(unittest.TestCase):

    def setUp(self):
        if not tensorflow_available():
            self.skipTest("TensorFlow not available")

    def test_build_and_predict(self):
        cnn = CNNModel(use_augmentation=False)
        cnn.build_model()
        probs = cnn.predict(np.zeros((28, 28), dtype=np.float32))
        self.assertEqual(probs.shape, (1, 10))
        self.assertAlmostEqual(float(probs.sum()), 1.0, places=4)

    def test_save_and_load_through_classifier(self):
        tmpdir = tempfile.mkdtemp()
        try:
            path = os.path.join(tmpdir, "digit_cnn.keras")
            cnn = CNNModel(use_augmentation=False)
            cnn.build_model()
            cnn.save_model(path)

            classifier = DigitClassifier(model_path=path).initialize()
            self.assertTrue(classifier.is_ready)
            self.assertEqual(classifier.predict(np.zeros((2, 28, 28, 1), dtype=np.float32)).shape, (2, 10))
        finally:
            shutil.rmtree(tmpdir)

    def test_predict_without_model(self):
        with self.assertRaises(ValueError):
            CNNModel().predict(np.zeros((28, 28), dtype=np.float32))


if __name__ == "__main__":
    unittest.main()
