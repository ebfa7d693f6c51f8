from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Sequence

# 直接スクリプトとして実行された場合でも src パッケージを解決できるようにする
if __package__ in {None, ""}:  # python src/cmd/cli.py 等の実行形態に対応
    project_root = Path(__file__).resolve().parents[2]
    if str(project_root) not in sys.path:
        sys.path.append(str(project_root))

from src.config.defaults import DEFAULT_LANGUAGE, WORDLIST_DIR
from src.config.logging import setup_logging
from src.lib.correction import BACKEND_NAMES, build_backend
from src.lib.dictionary import DictionaryWorker, WordListStore, find_unknown_segments
from src.lib.editor import EditorSettings, EditSession, run_until_settled, save_session

logger = logging.getLogger(__name__)

STDIN_MARKER = "-"


@dataclass(frozen=True)
class CorrectionRunResult:
    source: str
    original: str
    text: str
    corrections: int = 0
    failures: int = 0
    saved_to: Path | None = None


@dataclass(frozen=True)
class CheckRunResult:
    source: str
    unknown_words: List[str] = field(default_factory=list)
    segments: List[str] = field(default_factory=list)


CommandResult = List[CorrectionRunResult] | List[CheckRunResult]
CommandHandler = Callable[[argparse.Namespace], CommandResult]
Validator = Callable[[argparse.Namespace], None]


@dataclass(frozen=True)
class SubcommandSpec:
    name: str
    help: str
    configure: Callable[[argparse.ArgumentParser], None]
    handler: CommandHandler
    use_shared_parent: bool = True
    description: str | None = None
    aliases: tuple[str, ...] = ()
    validators: tuple[Validator, ...] = ()


def _build_shared_parent_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("inputs", nargs="*", default=[STDIN_MARKER], help="入力テキストファイル（- で標準入力）")
    parser.add_argument("--language", default=DEFAULT_LANGUAGE, help="言語コード（例: en, ru）")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="ログレベル (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--wordlist-dir",
        default=WORDLIST_DIR,
        help="<言語>.txt 形式の単語リストを置いたディレクトリ",
    )
    parser.add_argument(
        "--plain-text",
        action="store_true",
        help="メタ情報を省きテキストのみ標準出力へ表示する",
    )
    return parser


def _configure_correct_parser(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--backend",
        default=None,
        choices=[*BACKEND_NAMES, "auto"],
        help="補正バックエンド（未指定時は環境変数 LIVEFIX_BACKEND か自動選択）",
    )
    parser.add_argument("--timeout", type=float, default=120.0, help="1入力あたりの処理の上限秒数")
    parser.add_argument("--save", default=None, help="セッションを JSON で保存するパス（複数入力時は連番を付与）")
    parser.add_argument("--no-dictionary", action="store_true", help="辞書チェックを行わない")
    parser.add_argument("--no-typos", action="store_true", help="AI による誤字修正を行わない")
    parser.add_argument("--no-finalize", action="store_true", help="AI による文の確定を行わない")
    parser.add_argument("--no-scripts", action="store_true", help="ローカル整形スクリプトを適用しない")


def _configure_check_parser(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--worker-mode",
        default="thread",
        choices=["thread", "process"],
        help="辞書ワーカーの実行形態",
    )


def _validate_timeout(args: argparse.Namespace) -> None:
    if args.timeout <= 0:
        raise ValueError("--timeout には正の値を指定してください。")


def _read_inputs(inputs: Sequence[str]) -> list[tuple[str, str]]:
    items: list[tuple[str, str]] = []
    for name in inputs or [STDIN_MARKER]:
        if name == STDIN_MARKER:
            items.append(("<stdin>", sys.stdin.read()))
            continue
        path = Path(name)
        if not path.is_file():
            raise FileNotFoundError(f"入力ファイルが見つかりません: {path}")
        items.append((str(path), path.read_text(encoding="utf-8")))
    return items


def _build_store(args: argparse.Namespace) -> WordListStore:
    store = WordListStore()
    directory = getattr(args, "wordlist_dir", None)
    if directory:
        loaded = store.load_directory(directory)
        logger.debug("単語リストを読み込みました: %s", loaded)
    return store


def _save_path(base: str | None, index: int, total: int) -> Path | None:
    if not base:
        return None
    path = Path(base)
    if total <= 1:
        return path
    return path.with_name(f"{path.stem}_{index + 1}{path.suffix or '.json'}")


def _handle_correct_command(args: argparse.Namespace) -> CommandResult:
    inputs = _read_inputs(args.inputs)
    settings = EditorSettings.from_env().update(
        language=args.language,
        debounce_seconds=0.0,
        dictionary_check=not args.no_dictionary,
        fix_typos=not args.no_typos,
        fix_punctuation=not args.no_finalize,
        mini_scripts=not args.no_scripts,
    )
    backend = build_backend(args.backend)
    checker = None if args.no_dictionary else DictionaryWorker(_build_store(args), mode="thread")
    results: list[CorrectionRunResult] = []
    try:
        for index, (source, text) in enumerate(inputs):
            with EditSession(settings=settings, backend=backend, checker=checker) as session:
                session.apply_edit(text)
                run_until_settled(session, timeout=args.timeout, interval=0.05)
                saved = _save_path(args.save, index, len(inputs))
                if saved is not None:
                    save_session(saved, session)
                stats = session.stats
                results.append(
                    CorrectionRunResult(
                        source=source,
                        original=text,
                        text=session.text,
                        corrections=stats.corrections,
                        failures=stats.failures,
                        saved_to=saved,
                    )
                )
    finally:
        if checker is not None:
            checker.close()
        backend.close()
    return results


def _handle_check_command(args: argparse.Namespace) -> CommandResult:
    inputs = _read_inputs(args.inputs)
    language = (args.language or DEFAULT_LANGUAGE).strip().lower()
    results: list[CheckRunResult] = []
    with DictionaryWorker(_build_store(args), mode=args.worker_mode) as worker:
        for source, text in inputs:
            words = worker.check(text, language)
            segments = find_unknown_segments(text, words) or []
            results.append(
                CheckRunResult(
                    source=source,
                    unknown_words=list(words),
                    segments=[segment.text for segment in segments],
                )
            )
    return results


_SUBCOMMAND_SPECS: tuple[SubcommandSpec, ...] = (
    SubcommandSpec(
        name="correct",
        help="テキストを編集セッションに流し、補正が落ち着くまで実行する",
        configure=_configure_correct_parser,
        handler=_handle_correct_command,
        validators=(_validate_timeout,),
    ),
    SubcommandSpec(
        name="check",
        help="辞書ワーカーで未知語を調べる",
        configure=_configure_check_parser,
        handler=_handle_check_command,
    ),
)

_SUBCOMMAND_MAP: dict[str, SubcommandSpec] = {}
for spec in _SUBCOMMAND_SPECS:
    _SUBCOMMAND_MAP[spec.name] = spec
    for alias in spec.aliases:
        _SUBCOMMAND_MAP[alias] = spec


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """CLI引数を定義して解析する。"""

    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="入力中テキストの逐次補正CLI")
    subparsers = parser.add_subparsers(dest="command")
    shared_parent = _build_shared_parent_parser()

    for spec in _SUBCOMMAND_SPECS:
        parents = [shared_parent] if spec.use_shared_parent else []
        subparser = subparsers.add_parser(
            spec.name,
            parents=parents,
            help=spec.help,
            description=spec.description or spec.help,
            aliases=list(spec.aliases),
        )
        spec.configure(subparser)

    subparsers.required = False
    parser.set_defaults(command="correct")

    known_commands = set(_SUBCOMMAND_MAP.keys())
    if not argv or argv[0] not in known_commands:
        argv = ["correct", *argv]

    return parser.parse_args(argv)


def run_cli(args: argparse.Namespace) -> CommandResult:
    """コマンド引数を受け取り、補正・チェック処理を実行する。"""

    setup_logging(args.log_level)

    command = args.command or "correct"
    spec = _SUBCOMMAND_MAP.get(command)
    if spec is None:
        raise RuntimeError(f"未対応のコマンドです: {command}")
    for validator in spec.validators:
        validator(args)
    return spec.handler(args)


def main(argv: Sequence[str] | None = None) -> None:
    """エントリーポイント。実行結果を標準出力へ流す。"""

    args = parse_args(argv)

    try:
        results = run_cli(args)
    except Exception as exc:  # noqa: BLE001 - CLIからはエラーをそのまま通知する
        if args.command == "check":
            raise SystemExit(f"未知語チェックに失敗しました: {exc}") from exc
        raise SystemExit(f"補正に失敗しました: {exc}") from exc

    plain_text = getattr(args, "plain_text", False)
    if args.command == "check":
        for result in results:
            if plain_text:
                print("\n".join(result.unknown_words))
                continue
            print("=== 入力:", result.source)
            print("未知語:", ", ".join(result.unknown_words) or "-")
            if result.segments:
                print("未知語の区間:", " | ".join(result.segments))
            print()
        return

    for index, result in enumerate(results):
        if plain_text:
            if index > 0:
                print()
            print(result.text)
            continue
        print("=== 入力:", result.source)
        print(f"補正: {result.corrections} 件 / 失敗: {result.failures} 件")
        if result.saved_to is not None:
            print("保存先:", result.saved_to)
        print("テキスト:\n", result.text)
        print()


if __name__ == "__main__":
    main()
