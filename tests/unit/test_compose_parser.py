import pytest
import yaml

from mythic_compose.errors import DocumentNotFound, DocumentParseError
from mythic_compose.PARSERS.compose_parser import ComposeParser


def test_parse(tmp_path):
    compose_content = {
        'version': '2.4',
        'services': {
            'mythic_server': {
                'image': 'mythic_server',
                'ports': ['17443:17443'],
                'environment': ['MYTHIC_SERVER_PORT=17443'],
                'restart': 'always'
            },
            'mythic_postgres': {
                'image': 'mythic_postgres',
                'volumes': ['mythic_postgres_volume:/var/lib/postgresql/data']
            }
        },
        'volumes': {
            'mythic_postgres_volume': None
        }
    }

    compose_file = tmp_path / "docker-compose.yml"
    with open(compose_file, 'w') as f:
        yaml.dump(compose_content, f)

    document = ComposeParser().parse(str(compose_file))

    assert document == compose_content


def test_parse_missing(tmp_path):
    with pytest.raises(DocumentNotFound):
        ComposeParser().parse(str(tmp_path / "docker-compose.yml"))


def test_empty_document():
    assert ComposeParser().parse_from_string("") == {}
    assert ComposeParser().parse_from_string("services:\n") == {"services": None}


@pytest.mark.parametrize("content", [
    "just a string",
    "services: [a, b]",
    "volumes: 3",
    "key: [unclosed",
])
def test_invalid_documents(content):
    with pytest.raises(DocumentParseError):
        ComposeParser().parse_from_string(content)


def test_dump_keeps_unknown_keys():
    parser = ComposeParser()
    document = {"x-anchor": {"a": 1}, "services": {"web": {"image": "web", "ulimits": {"nofile": 1024}}}}
    assert parser.parse_from_string(parser.dump(document)) == document
