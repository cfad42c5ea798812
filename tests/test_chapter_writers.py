import os
import shutil
import tempfile
import unittest
from unittest.mock import MagicMock, call

from audiobook_chapterizer.chapter_writers import (
    ChapterWriterGroup,
    CueWriter,
    FfmetadataWriter,
    open_writers,
    seconds_to_cue_index,
    seconds_to_millis,
)


class TestTimeFormats(unittest.TestCase):

    def test_cue_index(self):
        self.assertEqual(seconds_to_cue_index(0.0), "00:00:00")
        self.assertEqual(seconds_to_cue_index(61.5), "01:01:37")
        self.assertEqual(seconds_to_cue_index(3725.2), "62:05:15")

    def test_millis(self):
        self.assertEqual(seconds_to_millis(9.95), 9950)
        self.assertEqual(seconds_to_millis(0.0), 0)


class TestWriters(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.cue_path = os.path.join(self.test_dir, "book.cue")
        self.meta_path = os.path.join(self.test_dir, "book.txt")

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def read(self, path):
        with open(path, encoding="utf-8") as f:
            return f.read()

    def test_cue_output(self):
        with open_writers("/books/My Book.m4b", cue_file_path=self.cue_path) as writers:
            writers.on_chapter_start(9.95, "Chapter 01")
            writers.on_chapter_start(61.5, "Chapter 02")
            writers.on_end_of_file(120.0)

        self.assertEqual(self.read(self.cue_path), (
            'FILE "My Book.m4b" MP4\n'
            "TRACK 1 AUDIO\n"
            '    TITLE "Chapter 00"\n'
            "    INDEX 01 00:00:00\n"
            "TRACK 2 AUDIO\n"
            '    TITLE "Chapter 01"\n'
            "    INDEX 01 00:09:71\n"
            "TRACK 3 AUDIO\n"
            '    TITLE "Chapter 02"\n'
            "    INDEX 01 01:01:37\n"
        ))
        self.assertEqual(os.listdir(self.test_dir), ["book.cue"])

    def test_ffmetadata_output(self):
        with open_writers("book.mp3", ffmetadata_file_path=self.meta_path) as writers:
            writers.on_chapter_start(0.0, "Intro")
            writers.on_chapter_start(9.95, "Chapter 01")
            writers.on_end_of_file(120.0)

        self.assertEqual(self.read(self.meta_path), (
            ";FFMETADATA1\n"
            "[CHAPTER]\nTIMEBASE=1/1000\nSTART=0\nEND=9950\ntitle=Intro\n"
            "[CHAPTER]\nTIMEBASE=1/1000\nSTART=9950\nEND=120000\ntitle=Chapter 01\n"
        ))

    def test_no_chapters_still_gets_one(self):
        with open_writers("book.flac", self.cue_path, self.meta_path) as writers:
            writers.on_end_of_file(42.0)

        self.assertIn('TITLE "Chapter 00"', self.read(self.cue_path))
        self.assertIn("START=0\nEND=42000\ntitle=Chapter 00\n", self.read(self.meta_path))

    def test_unknown_extension_is_binary(self):
        with open_writers("book.ogg", cue_file_path=self.cue_path) as writers:
            writers.on_end_of_file(1.0)
        self.assertTrue(self.read(self.cue_path).startswith('FILE "book.ogg" BINARY\n'))

    def test_exception_discards_output(self):
        with open(self.cue_path, "w") as f:
            f.write("previous run")

        with self.assertRaises(RuntimeError):
            with open_writers("book.mp3", self.cue_path, self.meta_path) as writers:
                writers.on_chapter_start(5.0, "Chapter 01")
                raise RuntimeError("recognizer crashed")

        self.assertEqual(self.read(self.cue_path), "previous run")
        self.assertFalse(os.path.exists(self.meta_path))
        self.assertEqual(os.listdir(self.test_dir), ["book.cue"])

    def test_unfinished_output_is_discarded(self):
        with open_writers("book.mp3", cue_file_path=self.cue_path) as writers:
            writers.on_chapter_start(5.0, "Chapter 01")

        self.assertFalse(os.path.exists(self.cue_path))
        self.assertEqual(os.listdir(self.test_dir), [])


class TestSanitize(unittest.TestCase):

    def test_cue_sanitize(self):
        self.assertEqual(CueWriter.sanitize(' The "Big"\r\n Day\\ '), "The Big Day")

    def test_ffmetadata_sanitize(self):
        self.assertEqual(FfmetadataWriter.sanitize("a=b;c#d\\e"), "a\\=b\\;c\\#d\\\\e")
        self.assertEqual(FfmetadataWriter.sanitize("one\r\ntwo"), "one\\\ntwo")


class TestChapterWriterGroup(unittest.TestCase):

    def setUp(self):
        self.writer = MagicMock()
        self.group = ChapterWriterGroup([self.writer])

    def test_inserts_first_chapter_when_late(self):
        self.group.on_chapter_start(10.0, "Chapter 01")
        self.group.on_chapter_start(20.0, "Chapter 02")

        self.writer.on_chapter_start.assert_has_calls([
            call(0.0, "Chapter 00"),
            call(10.0, "Chapter 01"),
            call(20.0, "Chapter 02"),
        ])
        self.assertEqual(self.group.chapter_count, 3)

    def test_no_extra_chapter_at_zero(self):
        self.group.on_chapter_start(0.0, "Chapter 01")
        self.writer.on_chapter_start.assert_called_once_with(0.0, "Chapter 01")

    def test_end_of_file_without_chapters(self):
        self.group.on_end_of_file(30.0)

        self.writer.on_chapter_start.assert_called_once_with(0.0, "Chapter 00")
        self.writer.on_end_of_file.assert_called_once_with(30.0)
        self.assertTrue(self.group.finished)

    def test_commit_on_success(self):
        with self.group:
            self.group.on_end_of_file(1.0)
        self.writer.commit.assert_called_once()
        self.writer.discard.assert_not_called()


if __name__ == "__main__":
    unittest.main()
