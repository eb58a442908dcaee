from fastapi import Request

from intake.services.reporting_client import ReportingClient
from intake.services.metadata_extractor import MetadataExtractor
from intake.workflow import IntakeWorkflow


def get_workflow(request: Request) -> IntakeWorkflow:
    return request.app.state.workflow


def get_reporting_client(request: Request) -> ReportingClient:
    return request.app.state.reporting_client


def get_extractor(request: Request) -> MetadataExtractor:
    return request.app.state.extractor
