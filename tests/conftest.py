import json

import pytest

from contract.operation_loader import OperationLoader
from verifier.exchange_loader import ExchangeLoader


@pytest.fixture
def make_operation():
    def _make(**fields):
        if fields.get("protocol", "rest") == "rest":
            fields.setdefault("method", "GET")
            fields.setdefault("path_template", "/users")
        return OperationLoader.parse_operation(fields)
    return _make


@pytest.fixture
def make_exchange():
    def _make(**fields):
        fields.setdefault("method", "GET")
        fields.setdefault("raw_url", "http://api.example.com/users")
        return ExchangeLoader.parse_exchange(fields)
    return _make


OPENAPI_YAML = """
openapi: 3.0.0
info:
  title: Users API
  version: 1.0.0
paths:
  /users:
    get:
      operationId: listUsers
      tags: [users]
      parameters:
        - name: limit
          in: query
          required: true
          schema:
            type: integer
      responses:
        '200':
          description: OK
        '400':
          description: Bad request
        default:
          description: Unexpected
    post:
      operationId: createUser
      requestBody:
        content:
          application/json:
            schema:
              type: object
      responses:
        '201':
          description: Created
  /users/{id}:
    parameters:
      - name: id
        in: path
        required: true
        schema:
          type: string
    get:
      operationId: getUser
      responses:
        '200':
          description: OK
        '404':
          description: Not found
    delete:
      operationId: deleteUser
      responses:
        default:
          description: Whatever
"""


POSTMAN_COLLECTION = {
    "info": {"name": "Users", "schema": "https://schema.getpostman.com/json/collection/v2.1.0/collection.json"},
    "item": [
        {
            "name": "users",
            "item": [
                {
                    "name": "List users",
                    "request": {
                        "method": "GET",
                        "url": {
                            "raw": "{{baseUrl}}/users?limit=10",
                            "query": [{"key": "limit", "value": "10"}],
                        },
                    },
                    "event": [
                        {
                            "listen": "test",
                            "script": {"exec": ["pm.test('ok', function () {", "  pm.response.to.have.status(200);", "});"]},
                        }
                    ],
                },
                {
                    "name": "Get user",
                    "request": {"method": "GET", "url": {"raw": "{{baseUrl}}/users/42"}},
                    "event": [
                        {
                            "listen": "test",
                            "script": {"exec": ["pm.expect(pm.response.code).to.be.oneOf([200, 404]);"]},
                        }
                    ],
                },
            ],
        },
        {
            "name": "Health",
            "request": {"method": "GET", "url": "https://api.example.com/health"},
        },
    ],
}


@pytest.fixture
def openapi_file(tmp_path):
    path = tmp_path / "users.yaml"
    path.write_text(OPENAPI_YAML, encoding="utf-8")
    return path


@pytest.fixture
def postman_file(tmp_path):
    path = tmp_path / "collection.json"
    path.write_text(json.dumps(POSTMAN_COLLECTION), encoding="utf-8")
    return path
