from calbridge.cli import build_parser


def test_parser_has_mode_flags() -> None:
    help_text = build_parser().format_help()
    for flag in ["--start", "--end", "--create", "--create-json", "--update-json", "--delete-id"]:
        assert flag in help_text


def test_parser_defaults_select_no_mode() -> None:
    args = build_parser().parse_args([])
    assert args.start is None
    assert args.end is None
    assert args.delete_id is None
    assert not (args.create or args.create_json or args.update_json or args.json_errors)
