# native
import sys
from pathlib import Path
from contextlib import contextmanager
from collections import namedtuple
from datetime import date
import json
import textwrap
from types import SimpleNamespace

# third-party
import regex


ItemRecord = namedtuple(
    "ItemRecord",
    ["key", "label", "weight", "type", "image", "unique", "useable", "description"],
)


def _lua_bool(arg_value):
    return "true" if arg_value else "false"


class _Paths:
    FILE_EXTENSIONS = {
        "lua": ".lua",
        "json": ".json",
        "txt": ".txt",
        "settings": ".settings",
    }
    # NOTE: every output format is Lua source, except for these two.
    OUTPUT_EXTENSIONS = {
        "json": ".json",
        "pipe": ".txt",
    }

    @classmethod
    def _is_file_of_type(cls, arg_path, arg_skip_exist, arg_target_type):
        if not isinstance(arg_path, (Path, str)):
            return False
        fp = Path(arg_path)
        if fp.suffix.lower() != cls.FILE_EXTENSIONS.get(arg_target_type):
            return False
        try:
            return arg_skip_exist or fp.is_file()
        except (OSError, PermissionError):
            return False

    @classmethod
    def is_lua_file(cls, arg_path, arg_skip_exist=False):
        """Check if a path refers to a Lua source file.

        Args:
            arg_path: The file path to check.
            arg_skip_exist: If True, skip checking whether the file exists on disk.

        Returns:
            True if the path has a `.lua` extension (and exists); otherwise, False.
        """
        return cls._is_file_of_type(arg_path, arg_skip_exist, "lua")

    @classmethod
    def is_settings_file(cls, arg_path, arg_skip_exist=False):
        """Check if a path refers to a `.settings` configuration file.

        Args:
            arg_path: The file path to check.
            arg_skip_exist: If True, skip checking whether the file exists on disk.

        Returns:
            True if the path has a `.settings` extension (and exists); otherwise, False.
        """
        return cls._is_file_of_type(arg_path, arg_skip_exist, "settings")

    @classmethod
    def get_output_name(cls, arg_input_fp, arg_format):
        """Build the output filename of a batch conversion, e.g. `items.ox.lua`."""
        ext = cls.OUTPUT_EXTENSIONS.get(arg_format, cls.FILE_EXTENSIONS["lua"])
        return f"{Path(arg_input_fp).stem}.{arg_format}{ext}"

    @staticmethod
    def get_download_name(arg_format, arg_date=None):
        """Build the conventional download filename for a converted output.

        Args:
            arg_format: The output format name.
            arg_date: Optional `datetime.date`; defaults to today.

        Returns:
            A filename such as `items_optimized_2024-05-01.lua`.
        """
        day = arg_date or date.today()
        return f"items_{arg_format}_{day.isoformat()}.lua"

    @staticmethod
    def _resolve_script_path():
        if getattr(sys, 'frozen', False):
            # Handle PyInstaller, cx_Freeze or other frozen apps
            script_fp = Path(sys.executable).resolve()
        elif sys.argv and sys.argv[0]:
            script_fp = Path(sys.argv[0]).resolve()
        else:
            return None, None
        if script_fp.is_file():
            return script_fp.parent, script_fp.stem
        return None, None

    @staticmethod
    def _get_log_fp():
        script_dp, script_stem = _Paths._resolve_script_path()
        if script_dp and script_stem:
            return script_dp / f'{script_stem}.log'
        desktop_dp = Path.home() / "Desktop"
        desktop_dp.mkdir(parents=True, exist_ok=True)
        return desktop_dp / "kic.log"

    @staticmethod
    def _get_default_data_dp():
        script_dp, script_stem = _Paths._resolve_script_path()
        if script_dp:
            data_dp = script_dp / script_stem
            data_dp.mkdir(parents=True, exist_ok=True)
            return data_dp
        return None

    @staticmethod
    def _get_dp(arg_path, arg_subfolder):
        if isinstance(arg_path, (str, Path)):
            dp = Path(arg_path).resolve()
            if dp.is_dir():
                # NOTE: an existing folder is used as is, without subfolders.
                return dp
        data_dp = _Paths._get_default_data_dp()
        if data_dp:
            dp = data_dp / arg_subfolder
            dp.mkdir(parents=True, exist_ok=True)
            if arg_path is not None:
                print(f'The provided {arg_path} path is invalid.\nDefaulting to "{dp}".')
            return dp
        return None

    @classmethod
    def _get_input_dp(cls, arg_path):
        return cls._get_dp(arg_path, "input")

    @classmethod
    def _get_output_dp(cls, arg_path):
        return cls._get_dp(arg_path, "output")

    @staticmethod
    def _get_nested_path_pairs(arg_input_root, arg_output_root, arg_validator, arg_output_namer):
        pairs = []
        input_dp = _Paths._get_input_dp(arg_input_root)
        output_dp = _Paths._get_output_dp(arg_output_root)
        if not input_dp or not output_dp:
            return pairs
        for input_fp in sorted(input_dp.rglob("*.*")):
            if not arg_validator(input_fp):
                continue
            relative_path = input_fp.parent.relative_to(input_dp)
            nested_output_dp = output_dp / relative_path
            nested_output_dp.mkdir(parents=True, exist_ok=True)
            output_fp = nested_output_dp / arg_output_namer(input_fp)
            pairs.append((input_fp, output_fp))
        return pairs


class _Fields:
    def __init__(self):
        self._STRING_VALUE = r"""['"]([^'"]*)['"]"""
        self._NUMBER_VALUE = r"(\d+)"
        self._BOOLEAN_VALUE = r"(true|false)"
        # NOTE: one row per field, in assembly order. Defaults receive the
        # fields assembled so far, so later fields can fall back on earlier ones.
        self._FIELD_RULES = [
            ("label", self._get_candidates("label"), self.extract_string, lambda f: f["key"]),
            ("weight", self._get_candidates("weight"), self.extract_number, lambda f: 0),
            ("type", self._get_candidates("type"), self.extract_string, lambda f: "item"),
            ("image", self._get_candidates("image"), self.extract_string, lambda f: f'{f["key"]}.png'),
            ("unique", self._get_candidates("unique"), self.extract_boolean, lambda f: False),
            ("useable", self._get_candidates("useable"), self.extract_boolean, lambda f: True),
            ("description", self._get_candidates("description"), self.extract_string, lambda f: f["label"]),
        ]

    @staticmethod
    def _get_candidates(arg_name):
        # Bare identifiers and both bracket-indexed spellings of the same field
        return [arg_name, f"['{arg_name}']", f'["{arg_name}"]']

    def _search(self, arg_text, arg_keys, arg_value_pattern):
        if isinstance(arg_keys, str):
            arg_keys = [arg_keys]
        for key in arg_keys:
            pattern = fr"(?<!\w){regex.escape(key)}\s*=\s*{arg_value_pattern}"
            match = regex.search(pattern, arg_text, flags=regex.IGNORECASE)
            if match:
                return match.group(1)
        return None

    def extract_string(self, arg_text, arg_keys, arg_fallback=""):
        """Return the first quoted value assigned to any of `arg_keys`, or `arg_fallback`.

        Args:
            arg_text: The source fragment of a single record.
            arg_keys: A key, or an ordered list of candidate key spellings.
            arg_fallback: The value returned when no candidate matches.
        """
        value = self._search(arg_text, arg_keys, self._STRING_VALUE)
        return arg_fallback if value is None else value

    def extract_number(self, arg_text, arg_keys, arg_fallback=0):
        """Return the integer assigned to `arg_keys`, or `arg_fallback`."""
        value = self._search(arg_text, arg_keys, self._NUMBER_VALUE)
        return arg_fallback if value is None else int(value)

    def extract_boolean(self, arg_text, arg_keys, arg_fallback=False):
        """Return the `true`/`false` literal assigned to `arg_keys`, or `arg_fallback`."""
        value = self._search(arg_text, arg_keys, self._BOOLEAN_VALUE)
        return arg_fallback if value is None else value.lower() == "true"

    def collect(self, arg_key, arg_text):
        """Assemble an ItemRecord from the source fragment of a single record.

        Args:
            arg_key: The record key, recovered by the caller.
            arg_text: The source fragment describing the record.

        Raises:
            ValueError: If the key is blank.
        """
        if not isinstance(arg_key, str) or not arg_key.strip():
            raise ValueError(f"Unusable item key: {arg_key!r}")
        fields = {"key": arg_key}
        for name, candidates, extractor, default in self._FIELD_RULES:
            fields[name] = extractor(arg_text, candidates, default(fields))
        return ItemRecord(**fields)


class _Scanner:
    OUTSIDE = "Outside"
    INSIDE_TABLE = "InsideTable"
    INSIDE_RECORD = "InsideRecord"

    def __init__(self, arg_fields):
        self._fields = arg_fields

    @staticmethod
    def _get_record_start(arg_table):
        return regex.compile(
            fr"^(?:{regex.escape(arg_table)})?"
            r"""\[['"](?P<key>[^'"]+)['"]\]\s*=\s*\{"""
        )

    def iter_spans(self, arg_lines, arg_table):
        """
        Lazily yield `(key, span, line_number)` for every complete record
        found inside the `arg_table` table.

        Brace depth is tracked globally for the table. A bracket-keyed block
        opened while a record is still open is part of that record's span.
        """
        record_start = self._get_record_start(arg_table)
        state = self.OUTSIDE
        depth = 0
        key = None
        span = []
        start_nth = 0

        def warn_unterminated():
            print(
                f'**SKIPPED ITEM** --> {key!r} is never closed\n'
                f'starting at line #{start_nth}'
            )

        for nth, raw_line in enumerate(arg_lines, start=1):
            line = raw_line.strip()
            match = record_start.match(line)
            if state == self.OUTSIDE:
                if match and line.startswith(arg_table):
                    # NOTE: a table-qualified keyed assignment opens the table
                    # and its own record at once.
                    state = self.INSIDE_TABLE
                elif arg_table in line and "=" in line:
                    state = self.INSIDE_TABLE
                    continue
                else:
                    continue
            depth += line.count("{") - line.count("}")
            if state == self.INSIDE_TABLE and match:
                state = self.INSIDE_RECORD
                key = match.group("key")
                span = [line]
                start_nth = nth
            elif state == self.INSIDE_RECORD and depth > 0:
                span.append(line)
            if state == self.INSIDE_RECORD and depth == 0:
                yield key, "\n".join(span), start_nth
                state = self.INSIDE_TABLE
                key = None
                span = []
            if depth < 0:
                if state == self.INSIDE_RECORD:
                    warn_unterminated()
                return
        if state == self.INSIDE_RECORD:
            warn_unterminated()

    def extract(self, arg_text, arg_table):
        records = []
        for key, span, nth in self.iter_spans(arg_text.split("\n"), arg_table):
            try:
                records.append(self._fields.collect(key, span))
            except ValueError as e:
                print(f'**SKIPPED ITEM** --> {e}\nat line #{nth}')
        return records


class _Compact:
    CALL_TOKEN = "add_item("

    def __init__(self):
        self._ADD_ITEM_TOKENIZER = regex.compile(
            r"""add_item\(['"](?P<key>[^'"]+)['"],"""
            r"""\s*['"](?P<label>[^'"]*)['"],"""
            r"""\s*(?P<weight>\d+),"""
            r"""\s*['"](?P<type>[^'"]*)['"],"""
            r"""\s*['"](?P<image>[^'"]*)['"],"""
            r"""\s*(?P<unique>true|false),"""
            r"""\s*(?P<useable>true|false),"""
            r"""\s*['"](?P<description>[^'"]*)['"]\)"""
        )

    def is_compact(self, arg_text):
        return self.CALL_TOKEN in arg_text

    def extract(self, arg_text, arg_table=None):
        records = []
        for match in self._ADD_ITEM_TOKENIZER.finditer(arg_text):
            tokens = match.groupdict()
            key = tokens["key"]
            label = tokens["label"] or key
            records.append(ItemRecord(
                key=key,
                label=label,
                weight=int(tokens["weight"]),
                type=tokens["type"] or "item",
                image=tokens["image"] or f"{key}.png",
                unique=tokens["unique"] == "true",
                useable=tokens["useable"] == "true",
                description=tokens["description"] or label,
            ))
        return records


class _Extraction:
    COMPACT = "compact"
    EXPANDED = "expanded"

    def __init__(self):
        self._compact = _Compact()
        self._scanner = _Scanner(_Fields())
        self._strategies = {
            self.COMPACT: self._compact.extract,
            self.EXPANDED: self._scanner.extract,
        }

    def detect(self, arg_text):
        # NOTE: the compact encoding takes precedence over the whole document,
        # even when an expanded table is present too.
        if self._compact.is_compact(arg_text):
            return self.COMPACT
        return self.EXPANDED

    def extract(self, arg_text, arg_table):
        return self._strategies[self.detect(arg_text)](arg_text, arg_table)


class _Emitters:
    _OPTIMIZED_HEADER = textwrap.dedent("""
        -- Optimized items format - ultra compact
        QBShared = QBShared or {}
        QBShared.Items = QBShared.Items or {}

        local function add_item(k, l, w, t, i, u, us, d)
          QBShared.Items[k] = {
            name = k, label = l, weight = w, type = t, image = i,
            unique = u, useable = us, shouldClose = true, description = d
          }
        end

        -- Items:
    """).lstrip("\n")

    @staticmethod
    def add_item_call(arg_record):
        r = arg_record
        return (
            f"add_item('{r.key}', '{r.label}', {r.weight}, '{r.type}', '{r.image}', "
            f"{_lua_bool(r.unique)}, {_lua_bool(r.useable)}, '{r.description}')"
        )

    @classmethod
    def optimized(cls, arg_records):
        lines = [cls.add_item_call(r) for r in arg_records]
        return cls._OPTIMIZED_HEADER + "".join(f"{ln}\n" for ln in lines)

    @staticmethod
    def original(arg_records):
        out = "QBShared = QBShared or {}\n"
        out += "QBShared.Items = QBShared.Items or {}\n\n"
        for r in arg_records:
            out += (
                f"QBShared.Items['{r.key}'] = {{\n"
                f"  name = '{r.key}',\n"
                f"  label = '{r.label}',\n"
                f"  weight = {r.weight},\n"
                f"  type = '{r.type}',\n"
                f"  image = '{r.image}',\n"
                f"  unique = {_lua_bool(r.unique)},\n"
                f"  useable = {_lua_bool(r.useable)},\n"
                f"  shouldClose = true,\n"
                f"  description = '{r.description}'\n"
                f"}}\n\n"
            )
        return out

    @staticmethod
    def pipe(arg_records):
        return "\n".join(
            "|".join([
                r.key, r.label, str(r.weight), r.type, r.image,
                _lua_bool(r.unique), _lua_bool(r.useable), r.description,
            ])
            for r in arg_records
        )

    @staticmethod
    def json(arg_records):
        return json.dumps([r._asdict() for r in arg_records], indent=2, ensure_ascii=False)

    @staticmethod
    def ox(arg_records, arg_resource="your_resource"):
        out = "return {\n"
        last = len(arg_records) - 1
        for index, r in enumerate(arg_records):
            out += f"\t['{r.key}'] = {{\n"
            out += f"\t\tlabel = '{r.label}',\n"
            if r.weight != 0:
                out += f"\t\tweight = {r.weight},\n"
            out += "\t\tconsume = 0.3,\n"
            out += f"\t\tstack = {_lua_bool(not r.unique)},\n"
            out += "\t\tclient = {\n"
            out += f"\t\t\timage = '{r.image}',\n"
            out += "\t\t\tusetime = 2500,\n"
            out += f"\t\t\tnotification = 'You used {r.label}',\n"
            out += "\t\t},\n"
            out += "\t\tserver = {\n"
            out += f"\t\t\texport = '{arg_resource}.{r.key}'\n"
            out += "\t\t},\n"
            if r.description and r.description != r.label:
                out += f"\t\t-- {r.description}\n"
            out += f"\t}}{',' if index < last else ''}\n"
        out += "}\n"
        return out


class _Settings:
    def __init__(self):
        self._structure = {
            "converter": ["table", "format"],
            "ox": ["resource"],
        }
        self._defaults = {
            "table": "QBShared.Items",
            "format": "optimized",
            "resource": "your_resource",
        }
        self._tokenizer = self._get_tokenizer()
        self._default_settings = self._get_default_settings()
        self.values = dict(self._defaults)

    def _get_tokenizer(self):
        props = [p for v in self._structure.values() for p in v]
        return regex.compile(
            fr'^(?P<type>{"|".join(self._structure)})'
            fr'|(?:\.(?P<property>{"|".join(props)})\((?P<value>"[^"]*")\))'
        )

    def _get_default_settings(self):
        return textwrap.dedent(r"""
            ### === ITEM CONVERTER CONFIGURATION ===
                Values are quoted. Lines starting with # are comments,
                and triple hashes open or close a comment block.
            ###

            ### === CONVERTER ===
                table("...")  → the Lua table holding the expanded item blocks
                format("...") → output format used when none is requested:
                                optimized, original, pipe, json or ox
            ###
            converter.table("QBShared.Items").format("optimized")

            ### === OX INVENTORY ===
                resource("...") → resource name used in server export names
            ###
            ox.resource("your_resource")
        """).lstrip("\n")

    @staticmethod
    def _strip_comments(arg_lines):
        def split_outside_quotes(arg_line, arg_delimiter):
            tokens = []
            current = ""
            i = 0
            in_quote = False
            while i < len(arg_line):
                if not in_quote and arg_line.startswith(arg_delimiter, i):
                    tokens.append(current)
                    current = ""
                    i += len(arg_delimiter)
                    tokens.append(arg_delimiter)
                else:
                    if arg_line[i] == '"':
                        in_quote = not in_quote
                    current += arg_line[i]
                    i += 1
            tokens.append(current)
            return [t.strip() for t in tokens if t.strip()]

        lines = []
        in_block = False
        for line in arg_lines:
            if not line:
                continue
            tokens = split_outside_quotes(line, "###")
            if "###" in tokens:
                for t in tokens:
                    if t == "###":
                        in_block = not in_block
                    elif not in_block:
                        lines.append(t)
                continue
            if in_block:
                continue
            tokens = split_outside_quotes(line, "#")
            if "#" in tokens:
                lines.extend(tokens[:tokens.index("#")])
                continue
            lines.append(line)
        return lines

    def _resolve_fp(self, arg_settings):
        if _Paths.is_settings_file(arg_settings):
            return Path(arg_settings)
        script_dp, script_stem = _Paths._resolve_script_path()
        if script_dp:
            fp = script_dp / f'{script_stem}.settings'
            if fp.is_file():
                return fp
        return None

    def load_settings(self, arg_settings=None):
        """
        Load converter settings from a `.settings` file.

        Args:
            arg_settings (str or Path, optional): Path to the `.settings` file.
                If not provided, a `.settings` file named after the running script
                is used when present. Built-in defaults apply otherwise.

        Returns:
            dict: The effective settings.
        """
        values = dict(self._defaults)
        settings_fp = self._resolve_fp(arg_settings)
        if settings_fp:
            with settings_fp.open(encoding="utf-8") as f:
                lines = self._strip_comments([line.strip() for line in f.readlines()])
            for line in lines:
                section = None
                for match in self._tokenizer.finditer(line):
                    if match.group("type"):
                        section = match.group("type")
                    elif section and match.group("property") in self._structure[section]:
                        values[match.group("property")] = match.group("value").strip('"')
        if values["format"] not in _Converter.FORMATS:
            print(
                f'"{values["format"]}" is not a recognized output format. '
                f'Falling back to the default format ({self._defaults["format"]}).'
            )
            values["format"] = self._defaults["format"]
        self.values = values
        return dict(values)

    def write_default_settings(self, arg_output=None):
        """
        Write the default settings file to the output folder.

        Args:
            arg_output (Path or str): Optional override for the output directory.

        Returns:
            Path: Path to the written file.
        """
        settings_fp = _Paths._get_output_dp(arg_output) / "kic.settings"
        settings_fp.write_text(self._default_settings, encoding="utf-8")
        print(f'Default settings generated as: {settings_fp}')
        return settings_fp


class _Converter:
    DEFAULT_FORMAT = "optimized"
    EMPTY_OUTPUT = "-- No items found in the provided content"
    FORMATS = {
        "optimized": _Emitters.optimized,
        "original": _Emitters.original,
        "pipe": _Emitters.pipe,
        "json": _Emitters.json,
        "ox": _Emitters.ox,
    }

    class _Batch:
        def __init__(self, arg_single):
            self._single = arg_single

        def convert_lua_files(self, arg_input_root=None, arg_output_root=None, arg_format=None):
            """Convert all Lua item files under a folder tree to the requested format.

            Recursively searches `arg_input_root` for `.lua` files and writes one
            converted file per input to the corresponding location under
            `arg_output_root`, named after the input and the format
            (e.g., `items.ox.lua`, `items.json.json`, `items.pipe.txt`).

            Args:
                arg_input_root: Root folder containing source Lua files.
                arg_output_root: Destination folder for the converted files.
                arg_format: Output format name. Defaults to the configured format.

            Returns:
                list: The written output paths.
            """
            output_format = self._single._resolve_format(arg_format)
            def output_namer(arg_input_fp): return _Paths.get_output_name(arg_input_fp, output_format)
            fp_pairs = _Paths._get_nested_path_pairs(
                arg_input_root, arg_output_root, _Paths.is_lua_file, output_namer
            )
            written = []
            for input_fp, output_fp in fp_pairs:
                self._single.load_lua(input_fp).write(output_fp, output_format)
                if output_fp.is_file():
                    written.append(output_fp)
            return written

    class _Single:
        def __init__(self, arg_settings):
            self._settings = arg_settings
            self._extraction = _Extraction()
            self._text = None

        def _resolve_format(self, arg_format):
            output_format = arg_format or self._settings.values["format"]
            if output_format not in _Converter.FORMATS:
                print(
                    f'"{output_format}" is not a recognized output format. '
                    f'Falling back to the default format ({_Converter.DEFAULT_FORMAT}).'
                )
                return _Converter.DEFAULT_FORMAT
            return output_format

        def _emit(self, arg_records, arg_format):
            if arg_format == "ox":
                return _Emitters.ox(arg_records, self._settings.values["resource"])
            return _Converter.FORMATS[arg_format](arg_records)

        def detect_encoding(self, arg_text):
            """Return `"compact"` or `"expanded"`, the extraction strategy used for `arg_text`."""
            return self._extraction.detect(arg_text)

        def parse_and_convert(self, arg_text, arg_format=None):
            """
            Recover the item records of a Lua source text and serialize them.

            Args:
                arg_text (str): Lua source declaring items, in either encoding.
                arg_format (str, optional): One of optimized, original, pipe, json
                    or ox. Unrecognized names fall back to optimized.

            Returns:
                SimpleNamespace: `records` (tuple of ItemRecord) and `text` (str).
                When no record is found, `records` is empty and `text` holds a
                placeholder comment.

            Example:
                from kic import App
                app = App()
                app.converter.single.parse_and_convert(lua_text, "ox").text
            """
            records = tuple(self._extraction.extract(arg_text, self._settings.values["table"]))
            if not records:
                return SimpleNamespace(records=records, text=_Converter.EMPTY_OUTPUT)
            output_format = self._resolve_format(arg_format)
            return SimpleNamespace(records=records, text=self._emit(records, output_format))

        def load_text(self, arg_text):
            """
            Load Lua source text for conversion.

            This method returns self and is chainable for concise load and write operations.
            """
            self._text = arg_text
            return self

        def load_lua(self, arg_input_fp):
            """
            Load a `.lua` file from `arg_input_fp` for conversion.

            Args:
                arg_input_fp (Path or str): Path to the input `.lua` file.

            This method returns self and is chainable for concise load and write operations.

            Example:
                from kic import App
                app = App()
                app.converter.single.load_lua('path/to/items.lua').write('path/to/items.ox.lua', 'ox')
            """
            self._text = None
            if _Paths.is_lua_file(arg_input_fp):
                input_fp = Path(arg_input_fp)
                try:
                    self._text = input_fp.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError):
                    print(f'Failed to read file: {input_fp.name}')
            return self

        def convert(self, arg_format=None):
            """Convert the currently loaded text. See `parse_and_convert`."""
            return self.parse_and_convert(self._text or "", arg_format)

        def write(self, arg_output_fp, arg_format=None):
            """
            Write the converted form of the currently loaded text to `arg_output_fp`.

            Args:
                arg_output_fp (Path or str): Path to the output file.
                arg_format (str, optional): Output format name.

            This method returns self and is chainable for concise load and write operations.
            """
            if self._text is not None:
                output_fp = Path(arg_output_fp)
                conversion = self.convert(arg_format)
                if not conversion.records:
                    print(f'No items found for: {output_fp.name}')
                output_fp.parent.mkdir(parents=True, exist_ok=True)
                output_fp.write_text(conversion.text, encoding="utf-8")
            return self


class _Builder:
    PLACEHOLDER_DESC = "A custom item created with Kuro Item Customizer"
    DEFAULT_WEIGHT = 100
    DEFAULT_FORMAT = "qb_block"

    def __init__(self):
        self._KEY_SANITIZER = regex.compile(r"[^a-z0-9_\-]")
        # NOTE: first matching row wins
        self._TYPE_HINTS = [
            ("weapon", ["weapon", "gun", "rifle", "pistol"]),
            ("ammo", ["ammo", "bullet", "round"]),
            ("drug", ["drug", "weed", "coke", "meth"]),
            ("food", ["food", "burger", "pizza", "sandwich"]),
            ("drink", ["drink", "water", "soda", "beer"]),
            ("clothing", ["clothing", "shirt", "pants", "hat"]),
            ("accessory", ["accessory", "ring", "watch", "necklace"]),
        ]
        # (unique, useable, combinable)
        self._TYPE_FLAGS = {
            "weapon": (True, True, False),
            "accessory": (True, True, False),
            "ammo": (False, False, True),
            "drug": (False, True, True),
            "food": (False, True, True),
            "drink": (False, True, True),
        }
        self._templates = {
            "qb_block": self._get_qb_block,
            "optimized": self._get_optimized,
            "ox": self._get_ox,
        }

    def to_key(self, arg_name):
        """Derive an item key and a display label from a free-form item name."""
        name = arg_name or ""
        key = self._KEY_SANITIZER.sub("_", name.strip().lower())
        label = name.replace("_", " ").strip()
        if label:
            label = label[0].upper() + label[1:]
        return key, label

    def _guess_type(self, arg_key):
        for item_type, hints in self._TYPE_HINTS:
            if any(h in arg_key for h in hints):
                return item_type
        return "item"

    def suggest_fields(self, arg_name, arg_weight=None):
        """
        Auto-populate the fields of a single item from its name.

        Args:
            arg_name (str): Free-form item name, e.g. "combat pistol".
            arg_weight (int, optional): Weight to keep; defaults to 100.

        Returns:
            SimpleNamespace: key, label, weight, type, image, unique, useable,
            combinable and description.
        """
        key, label = self.to_key(arg_name)
        item_type = self._guess_type(key)
        unique, useable, combinable = self._TYPE_FLAGS.get(item_type, (False, True, False))
        return SimpleNamespace(
            key=key,
            label=label,
            weight=arg_weight or self.DEFAULT_WEIGHT,
            type=item_type,
            image=f"{key}.png",
            unique=unique,
            useable=useable,
            combinable=combinable,
            description=label or self.PLACEHOLDER_DESC,
        )

    @staticmethod
    def _get_weight(arg_value):
        try:
            return int(arg_value)
        except (ValueError, TypeError):
            return 0

    def _get_description(self, arg_item):
        desc = arg_item.description or arg_item.label or self.PLACEHOLDER_DESC
        return desc.replace("'", "\\'")

    def _get_qb_block(self, arg_item):
        i = arg_item
        return (
            f"['{i.key}'] = {{ \n"
            f"  name = '{i.key}', \n"
            f"  label = '{i.label}', \n"
            f"  weight = {self._get_weight(i.weight)}, \n"
            f"  type = '{i.type}', \n"
            f"  image = '{i.image}', \n"
            f"  unique = {_lua_bool(i.unique)}, \n"
            f"  useable = {_lua_bool(i.useable)}, \n"
            f"  combinable = {'true' if getattr(i, 'combinable', False) else 'nil'},\n"
            f"  shouldClose = true, \n"
            f"  description = '{self._get_description(i)}' \n"
            f"}}"
        )

    def _get_optimized(self, arg_item):
        i = arg_item
        return (
            f"add_item('{i.key}', '{i.label}', {self._get_weight(i.weight)}, "
            f"'{i.type}', '{i.image}', {_lua_bool(i.unique)}, {_lua_bool(i.useable)}, "
            f"'{self._get_description(i)}')"
        )

    def _get_ox(self, arg_item):
        i = arg_item
        return (
            f"['{i.key}'] = {{\n"
            f"  label = '{i.label}',\n"
            f"  weight = {self._get_weight(i.weight)},\n"
            f"  stack = {_lua_bool(not i.unique)},\n"
            f"  close = true,\n"
            f"  description = '{self._get_description(i)}'\n"
            f"}}"
        )

    def build_item(self, arg_item, arg_format=None):
        """
        Render a single manually entered item.

        Args:
            arg_item: Any object exposing key, label, weight, type, image, unique,
                useable, description (and optionally combinable), such as the
                result of `suggest_fields` or an ItemRecord.
            arg_format (str, optional): qb_block, optimized or ox. Defaults to qb_block.

        Returns:
            str: The rendered item.
        """
        template = self._templates.get(arg_format or self.DEFAULT_FORMAT)
        if template is None:
            print(
                f'"{arg_format}" is not a recognized builder format. '
                f'Falling back to the default format ({self.DEFAULT_FORMAT}).'
            )
            template = self._templates[self.DEFAULT_FORMAT]
        return template(arg_item)


class App:
    """
    Main application interface exposing curated subsets of functionality
    from the item parsing, conversion and building helpers.

    Structure:
    - converter:
        Recovers item records from Lua sources and serializes them to the
        optimized, original, pipe, json or ox formats.
        - converter.single:
            Single text or file conversion.
            Methods:
                - parse_and_convert
                - detect_encoding
                - load_text
                - load_lua
                - convert
                - write
        - converter.batch:
            Batch conversion of Lua files under a folder tree.
            Methods:
                - convert_lua_files
        - converter.tools:
            Utility methods for file validation and naming.
            Methods:
                - is_lua_file
                - get_output_name
                - get_download_name
    - builder:
        Builds single items from manually entered fields.
        Methods:
            - to_key
            - suggest_fields
            - build_item
    - settings:
        Converter configuration.
        Methods:
            - load_settings
            - write_default_settings
    """

    def __init__(self):
        def expose(arg_target, arg_source, arg_methods):
            for name in arg_methods:
                setattr(arg_target, name, getattr(arg_source, name))

        settings = _Settings()
        single = _Converter._Single(settings)
        self.settings = SimpleNamespace()
        expose(self.settings, settings, [
            "load_settings",
            "write_default_settings",
        ])
        self.converter = SimpleNamespace()
        self.converter.single = SimpleNamespace()
        expose(self.converter.single, single, [
            "parse_and_convert",
            "detect_encoding",
            "load_text",
            "load_lua",
            "convert",
            "write",
        ])
        self.converter.batch = SimpleNamespace()
        expose(self.converter.batch, _Converter._Batch(single), [
            "convert_lua_files",
        ])
        self.converter.tools = SimpleNamespace()
        expose(self.converter.tools, _Paths, [
            "is_lua_file",
            "get_output_name",
            "get_download_name",
        ])
        self.builder = SimpleNamespace()
        expose(self.builder, _Builder(), [
            "to_key",
            "suggest_fields",
            "build_item",
        ])

    @staticmethod
    @contextmanager
    def log():
        """
        Context manager that redirects stdout and stderr to a log file.

        The log file is created in the same directory as the running script or executable.
        If that location cannot be determined or is not writable, it falls back to the user's desktop.

        Usage example:
            with App.log():
                App().converter.batch.convert_lua_files("in", "out", "ox")
        """
        log_fp = _Paths._get_log_fp()
        with log_fp.open("w", encoding="utf-8") as f:
            default_stdout = sys.stdout
            default_stderr = sys.stderr
            sys.stdout = f
            sys.stderr = f
            try:
                yield
            finally:
                sys.stdout.flush()
                sys.stderr.flush()
                sys.stdout = default_stdout
                sys.stderr = default_stderr
