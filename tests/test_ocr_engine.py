import io
import json

import pytest
from PIL import Image

from corneal_ocr.exceptions import NoTextDetected
from corneal_ocr.ocr_engine import AnnotationFileDetector, EasyOCRDetector


class FakeReader:
    """Stands in for easyocr.Reader; returns canned readtext output."""

    def __init__(self, results):
        self.results = results
        self.shapes = []

    def readtext(self, array):
        self.shapes.append(array.shape)
        return self.results


def _png(width=320, height=240):
    buffer = io.BytesIO()
    Image.new('RGB', (width, height), (255, 255, 255)).save(buffer, format='PNG')
    return buffer.getvalue()


def test_easyocr_detector_builds_summary_and_fragments():
    reader = FakeReader([
        ([[10, 10], [50, 10], [50, 30], [10, 30]], ' K1: ', 0.95),
        ([[60, 10], [100, 10], [100, 30], [60, 30]], '43.3', 0.88),
        ([[200, 10], [220, 10], [220, 30], [200, 30]], 'noise', 0.10),
        ([[0, 0], [1, 0], [1, 1], [0, 1]], '   ', 0.99),
    ])
    detector = EasyOCRDetector(reader=reader)

    result = detector.detect(_png())

    assert result.summary_text == 'K1:\n43.3'
    assert result.summary.box.max_x == 320
    assert [f.text for f in result.fragments] == ['K1:', '43.3']
    assert result.fragments[0].box.mean_x == 30.0
    assert reader.shapes == [(240, 320, 3)]


def test_easyocr_detector_raises_when_nothing_survives():
    detector = EasyOCRDetector(reader=FakeReader([
        ([[0, 0], [5, 0], [5, 5], [0, 5]], 'faint', 0.2),
    ]))
    with pytest.raises(NoTextDetected):
        detector.detect(_png())


def test_easyocr_detector_custom_threshold():
    detector = EasyOCRDetector(drop_score=0.1, reader=FakeReader([
        ([[0, 0], [5, 0], [5, 5], [0, 5]], 'faint', 0.2),
    ]))
    assert detector.detect(_png()).summary_text == 'faint'


def test_annotation_file_detector(tmp_path):
    path = tmp_path / 'annotations.json'
    path.write_text(json.dumps({'textAnnotations': [
        {'description': 'K1: 43.3', 'boundingPoly': {'vertices': [
            {'x': 0, 'y': 0}, {'x': 900, 'y': 0}, {'x': 900, 'y': 600}, {'x': 0, 'y': 600}]}},
        {'description': 'K1: 43.3', 'boundingPoly': {'vertices': [
            {'x': 10, 'y': 10}, {'x': 90, 'y': 10}, {'x': 90, 'y': 30}, {'x': 10, 'y': 30}]}},
    ]}), encoding='utf-8')

    detector = AnnotationFileDetector(path)
    result = detector.detect(b'ignored')

    assert len(result) == 2
    assert result.summary.box.max_x == 900
    assert detector.detect(b'other') is result


def test_annotation_file_detector_requires_a_single_file(tmp_path):
    (tmp_path / 'scan.json').write_text('[]', encoding='utf-8')
    with pytest.raises(ValueError):
        AnnotationFileDetector(tmp_path)


def test_annotation_file_detector_replays_same_result_for_any_image(tmp_path):
    path = tmp_path / 'scan.json'
    path.write_text(json.dumps([
        {'description': 'K1: 43.3', 'boundingBox': [[0, 0], [500, 0], [500, 400], [0, 400]]},
    ]), encoding='utf-8')
    detector = AnnotationFileDetector(path)

    first = detector.detect(_png(320, 240))
    second = detector.detect(_png(64, 48))

    assert first is second
    assert first.summary_text == 'K1: 43.3'


def test_annotation_file_detector_empty(tmp_path):
    path = tmp_path / 'empty.json'
    path.write_text('[]', encoding='utf-8')
    with pytest.raises(NoTextDetected):
        AnnotationFileDetector(path).detect(b'')
