import os
import time
import shutil
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .classifier import FileClassifier
from .collect import build_membership, run_rules
from .data import aggregate_data
from .emitter import Emitter
from .layouts import LayoutResolver, LayoutState, apply_templates
from .models import Collections, FileRecord, Settings
from .plugins import BuildContext, run_plugins
from .settings import TramlineSettings


class InfoFilter(logging.Filter):
    """Filter to allow only selected INFO messages to be shown in the console."""
    def filter(self, record):
        if record.levelno >= logging.WARNING:
            return True
        allowed_messages = [
            "WROTE:",
            "DRAFT:",
            "UNDEFINED STATE:",
            "PASSED:",
            "Built in",
            "Total pages generated:",
            "Loaded configuration from:",
            "SYNDICATION",
            "MEDIA:",
            "PWA |",
            "Serving",
            "Live reload",
            "Rebuilding",
        ]
        return any(msg in record.getMessage() for msg in allowed_messages)


class Tramline:
    """Runs the whole build: classify, data, collections, layouts, emit."""

    def __init__(self, project_dir='.', settings: Optional[Settings] = None):
        self.project_dir = os.path.abspath(project_dir)
        if settings is None:
            loader = TramlineSettings(self.project_dir)
            loader.load_settings()
            settings = loader.freeze()
        self.settings = settings

        self.source_dir = os.path.normpath(os.path.join(self.project_dir, settings.source))
        self.output_dir = os.path.normpath(os.path.join(self.project_dir, settings.output))
        if not os.path.isdir(self.source_dir):
            raise FileNotFoundError(f"Source directory '{self.source_dir}' does not exist.")

        self.files: List[FileRecord] = []
        self.data: Dict[str, Any] = {}
        self.collections: Collections = {}
        self.pages_generated = 0
        self.layout_errors = 0

        self.setup_logging()

    def setup_logging(self):
        """Set up logging configuration."""
        self.logger = logging.getLogger('Tramline')
        self.logger.setLevel(logging.DEBUG)

        if not self.logger.handlers:
            # Console handler with filter
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.INFO)
            console_handler.addFilter(InfoFilter())
            console_handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(console_handler)

        if self.settings.log_dir:
            # File handler for all logs
            logs_dir = os.path.join(self.project_dir, self.settings.log_dir)
            os.makedirs(logs_dir, exist_ok=True)
            log_filename = datetime.now().strftime('tramline_%Y-%m-%d_%H-%M-%S.log')
            log_filepath = os.path.join(logs_dir, log_filename)
            # One log file per build: drop the handler left over from an earlier build
            for handler in list(self.logger.handlers):
                if isinstance(handler, logging.FileHandler):
                    self.logger.removeHandler(handler)
                    handler.close()
            file_handler = logging.FileHandler(log_filepath)
            file_handler.setLevel(logging.DEBUG)
            file_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def prepare_output_dir(self):
        """Create the output directory, removing the previous build first when clean is set."""
        if os.path.exists(self.output_dir) and self.settings.clean:
            protected = {self.project_dir, self.source_dir}
            if self.output_dir in protected:
                raise ValueError(f"Refusing to clean {self.output_dir}: it is the project or source directory")
            shutil.rmtree(self.output_dir)
            self.logger.debug(f"Removed previous output {self.output_dir}")
        elif os.path.exists(self.output_dir):
            self.logger.info(f"Building into current {self.output_dir}")
        os.makedirs(self.output_dir, exist_ok=True)

    def copy_passthrough(self):
        """Copy the pass entries from the source tree into the output unchanged."""
        for item in self.settings.passthrough:
            source = os.path.join(self.source_dir, item)
            destination = os.path.join(self.output_dir, item)
            try:
                if os.path.isdir(source):
                    shutil.copytree(source, destination, dirs_exist_ok=True)
                elif os.path.isfile(source):
                    os.makedirs(os.path.dirname(destination), exist_ok=True)
                    shutil.copy2(source, destination)
                else:
                    self.logger.error(f"Cannot pass through '{item}': not found in {self.source_dir}")
                    continue
                self.logger.info(f"PASSED: {item}")
            except (IOError, OSError, PermissionError, shutil.Error) as e:
                self.logger.error(f"Failed to pass through '{item}': {e}")

    def build(self):
        """Main build process."""
        start = time.time()
        self.logger.debug(f"Starting build of {self.source_dir}")

        self.prepare_output_dir()

        classifier = FileClassifier(self.settings, self.source_dir, self.output_dir)
        files = classifier.classify()
        files, data = aggregate_data(self.settings, files)

        collections = build_membership(files)
        files, collections = run_rules(self.settings.collect, files, collections, data)

        apply_templates(files, data, collections)
        resolver = LayoutResolver(files, data, collections, self.settings.includes)
        tally = resolver.resolve_all(files)
        self.layout_errors = tally[LayoutState.ERROR]

        self.files, self.data, self.collections = files, data, collections
        context = BuildContext(self.settings, files, collections, data, self.output_dir)
        run_plugins(context)

        emitter = Emitter(self.settings, self.output_dir)
        emitter.emit(files)
        self.pages_generated = emitter.pages_generated

        self.copy_passthrough()
        run_plugins(context, after_emit=True)

        total_time = time.time() - start
        self.logger.info(f"Total pages generated: {self.pages_generated}")
        self.logger.info(f"Built in {total_time:.3f} seconds")
        return self
