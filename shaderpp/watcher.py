import logging
import queue
import threading
from typing import List, Optional

import yaml

from .config import Config, ShaderJob
from .filesystem import FileSystem, TrackedFile
from .preprocessor import ShaderPreprocessor

logger = logging.getLogger(__name__)


def create_preprocessors(config: Config, file_system: FileSystem) -> List[ShaderPreprocessor]:
    """Creates one preprocessor per job, sharing the file system and its path tokens."""
    for token, path in config.path_tokens.items():
        file_system.register_path_token(token, path, override=True)
    include_paths = tuple(str(p) for p in config.include_paths)
    return [ShaderPreprocessor(str(job.src), job.dictionary, include_paths, file_system)
            for job in config.jobs]


def process_job(job: ShaderJob, preprocessor: ShaderPreprocessor) -> bool:
    """Preprocesses one job and writes its output. A failed run leaves the output untouched."""
    result = preprocessor.process()
    if not result.success:
        logger.error("Failed to preprocess %s", job.src)
        return False

    try:
        job.dst.parent.mkdir(parents=True, exist_ok=True)
        with open(job.dst, "w+", encoding="utf-8") as f:
            f.write(result.output)
    except OSError as e:
        logger.error("Could not write %s: %s", job.dst, e)
        return False
    logger.info("Wrote %s", job.dst)
    return True


def trigger_reprocess(job: ShaderJob, preprocessor: ShaderPreprocessor, reload_dictionary: bool) -> bool:
    if reload_dictionary:
        try:
            job.reload_dictionary()
        except (OSError, TypeError, yaml.YAMLError) as e:
            logger.error("Could not reload dictionary %s: %s", job.dictionary_path, e)
            return False
    return process_job(job, preprocessor)


def run_once(config: Config, file_system: FileSystem) -> bool:
    preprocessors = create_preprocessors(config, file_system)
    success = True
    try:
        for job, preprocessor in zip(config.jobs, preprocessors):
            success = process_job(job, preprocessor) and success
    finally:
        for preprocessor in preprocessors:
            preprocessor.close()
    return success


class ChangeQueue:
    """
    Collects jobs that need reprocessing. Change callbacks arrive on the
    observer thread and only enqueue; the watcher loop does the work.
    """

    def __init__(self):
        self._pending: "queue.Queue[tuple]" = queue.Queue()

    def schedule(self, index: int, reload_dictionary: bool = False) -> None:
        self._pending.put((index, reload_dictionary))

    def drain(self, timeout: float) -> dict:
        """Waits up to timeout for a change, then returns {job index: reload dictionary}."""
        changes = {}
        try:
            index, reload_dictionary = self._pending.get(timeout=timeout)
        except queue.Empty:
            return changes
        changes[index] = reload_dictionary
        # Editors often fire several events for a single save
        while True:
            try:
                index, reload_dictionary = self._pending.get_nowait()
            except queue.Empty:
                break
            changes[index] = changes.get(index, False) or reload_dictionary
        return changes


def run_watcher(config: Config, file_system: FileSystem,
                stop_event: Optional[threading.Event] = None, timeout: float = 1.0) -> None:
    """Processes every job, then reprocesses a job whenever one of its inputs changes."""
    preprocessors = create_preprocessors(config, file_system)
    changes = ChangeQueue()
    dictionary_files: List[TrackedFile] = []

    for index, (job, preprocessor) in enumerate(zip(config.jobs, preprocessors)):
        preprocessor.set_callback(lambda _, index=index: changes.schedule(index))
        if job.dictionary_path is not None:
            dictionary_files.append(file_system.watch(
                str(job.dictionary_path),
                lambda _, index=index: changes.schedule(index, reload_dictionary=True)))
        process_job(job, preprocessor)

    logger.info("Watching %d shader%s for changes. Press Ctrl+C to stop.",
                len(config.jobs), '' if len(config.jobs) == 1 else 's')

    try:
        while stop_event is None or not stop_event.is_set():
            for index, reload_dictionary in changes.drain(timeout).items():
                job = config.jobs[index]
                logger.info("Detected modification affecting: %s", job.src)
                trigger_reprocess(job, preprocessors[index], reload_dictionary)
    except KeyboardInterrupt:
        logger.info("Stopping watcher (Ctrl+C pressed)...")
    finally:
        for tracked in dictionary_files:
            tracked.release()
        for preprocessor in preprocessors:
            preprocessor.close()
        logger.info("Watcher stopped completely.")
