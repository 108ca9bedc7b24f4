from conftest import workspace_files, write_files

from gamepatcher.core.patch_index import has_index_marker, load_patch_index, parse_patch_index


def test_index_file_names_are_detected():
    assert has_index_marker("hdiffmap.json")
    assert has_index_marker("HDIFF_MAP.txt")
    assert has_index_marker("hdifffiles.txt")
    assert not has_index_marker("resource_map.json")
    assert not has_index_marker("deletefiles.txt")


def test_parse_json_object():
    index = parse_patch_index('{"x.bin.hdiff": "Game_Data/x.bin", "bad": 3}')
    assert index == {"x.bin.hdiff": "Game_Data/x.bin"}


def test_parse_json_lines_synthesizes_patch_names():
    content = (
        '{"remoteName": "Game_Data/StreamingAssets/a.block"}\n'
        '{"remoteName": "Game_Data\\\\b.bin", "size": 12}\n'
        '{"other": 1}\n'
    )
    index = parse_patch_index(content)
    assert index == {
        "a.block.hdiff": "Game_Data/StreamingAssets/a.block",
        "b.bin.hdiff": "Game_Data/b.bin",
    }


def test_single_json_line_is_not_mistaken_for_an_object():
    index = parse_patch_index('{"remoteName": "data/x.bin"}\n')
    assert index == {"x.bin.hdiff": "data/x.bin"}


def test_parse_text_lines_with_mixed_separators():
    content = "\ufeffa.hdiff -> data/a.bin\nb.hdiff=data/b.bin\nc.hdiff\tdata/c.bin\n# comment\nlonely\n"
    index = parse_patch_index(content)
    assert index == {
        "a.hdiff": "data/a.bin",
        "b.hdiff": "data/b.bin",
        "c.hdiff": "data/c.bin",
    }


def test_custom_suffix_is_used_for_json_lines():
    index = parse_patch_index('{"remote_path": "x/y.dat"}', patch_suffix=".diff")
    assert index == {"y.dat.diff": "x/y.dat"}


def test_text_line_splits_at_the_first_separator():
    index = parse_patch_index("a.hdiff b=c\nx.hdiff -> data/my file.bin\n")
    assert index == {"a.hdiff": "b", "x.hdiff": "data/my file.bin"}


def test_load_without_index_file_is_empty(tmp_path):
    write_files(tmp_path, {"x.bin.hdiff": "p"})
    index = load_patch_index(workspace_files(tmp_path))
    assert index.path is None
    assert index.entries == {}
    assert index.manifests == frozenset()


def test_load_never_raises_on_garbage(tmp_path):
    write_files(tmp_path, {"hdiffmap.json": b"\xff\xfe\x00garbage{{{"})
    index = load_patch_index(workspace_files(tmp_path))
    assert index.manifests == {tmp_path / "hdiffmap.json"}
    assert isinstance(index.entries, dict)


def test_load_reads_workspace_map(tmp_path):
    write_files(tmp_path, {"hdiffmap.json": '{"remoteName": "Game_Data/x.bin"}\n{"remoteName": "y.bin"}\n'})
    index = load_patch_index(workspace_files(tmp_path))
    assert index.path == tmp_path / "hdiffmap.json"
    assert index.entries == {
        "x.bin.hdiff": "Game_Data/x.bin",
        "y.bin.hdiff": "y.bin",
    }


def test_marked_index_wins_over_game_map_json(tmp_path):
    write_files(
        tmp_path,
        {
            "Game_Data/StreamingAssets/worldmap.json": '{"regions": "north"}',
            "hdiffmap.json": '{"remoteName": "Game_Data/x.bin"}\n',
        },
    )
    index = load_patch_index(workspace_files(tmp_path))
    assert index.path == tmp_path / "hdiffmap.json"
    assert index.manifests == {tmp_path / "hdiffmap.json"}


def test_generic_map_json_is_the_index_only_when_it_maps_patches(tmp_path):
    write_files(
        tmp_path,
        {
            "Game_Data/StreamingAssets/worldmap.json": '{"regions": "north"}',
            "resource_map.json": '{"x.bin.hdiff": "Game_Data/x.bin"}',
        },
    )
    index = load_patch_index(workspace_files(tmp_path))
    assert index.path == tmp_path / "resource_map.json"
    assert index.entries == {"x.bin.hdiff": "Game_Data/x.bin"}
    assert index.manifests == {tmp_path / "resource_map.json"}


def test_game_map_json_alone_is_not_an_index(tmp_path):
    write_files(tmp_path, {"Game_Data/StreamingAssets/worldmap.json": '{"regions": "north"}'})
    index = load_patch_index(workspace_files(tmp_path))
    assert index.path is None
    assert index.manifests == frozenset()


def test_every_marked_file_is_a_manifest(tmp_path):
    write_files(tmp_path, {"a/hdiffmap.json": "{}", "b/hdifffiles.txt": "x.hdiff x"})
    index = load_patch_index(workspace_files(tmp_path))
    assert index.manifests == {tmp_path / "a" / "hdiffmap.json", tmp_path / "b" / "hdifffiles.txt"}
