import yaml

from obsred.utils.config import pre_process_yaml, include_parts


def test_include(tmp_path):
    (tmp_path / "site.yaml").write_text("observatory:\n  location:\n    longitude: 9.94\n    latitude: 51.56\n")
    main = tmp_path / "main.yaml"
    main.write_text("class: obsred.modules.ObservationManager\nlocation: {include site.yaml observatory.location}\n")

    cfg = yaml.safe_load(pre_process_yaml(str(main)))
    assert cfg["class"] == "obsred.modules.ObservationManager"
    assert cfg["location"] == {"longitude": 9.94, "latitude": 51.56}


def test_include_parts():
    cfg = {"a": {"b": {"c": 1}}}
    assert include_parts(cfg, None) == cfg
    assert include_parts(cfg, "a.b") == {"c": 1}
